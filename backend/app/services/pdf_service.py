"""Course PDF rendering.

Renders course Markdown as plain typeset pages with Pillow and stores the
result in R2. The layout is deliberately simple: headings, wrapped body
text and page numbers.
"""

import asyncio
import logging
import re
import textwrap
from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from app.models.course import Course
from app.services.r2_storage import R2StorageService, get_r2_service

logger = logging.getLogger(__name__)

# A4 at 150 dpi
PAGE_WIDTH = 1240
PAGE_HEIGHT = 1754
PAGE_DPI = 150.0
MARGIN = 100

FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
BOLD_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"

# style -> (font size, bold, wrap width in characters, space before)
STYLES = {
    "title": (40, True, 45, 0),
    "h1": (32, True, 55, 30),
    "h2": (28, True, 60, 26),
    "h3": (24, True, 70, 18),
    "body": (20, False, 88, 0),
}

_HEADING = re.compile(r"^(#{1,3})\s+(.*)$")
_EMPHASIS = re.compile(r"(\*\*|__|\*|`)")


def _load_font(size: int, bold: bool):
    try:
        return ImageFont.truetype(BOLD_FONT_PATH if bold else FONT_PATH, size)
    except OSError:
        # Fall back to default font
        return ImageFont.load_default()


def markdown_to_lines(course: Course) -> list[tuple[str, str]]:
    """Flatten course Markdown into (style, text) lines, already wrapped."""
    lines: list[tuple[str, str]] = []

    def add(style: str, text: str) -> None:
        width = STYLES[style][2]
        wrapped = textwrap.wrap(text, width=width) or [""]
        lines.extend((style, part) for part in wrapped)

    add("title", course.title)
    add("body", "")

    sections = [course.content or ""]
    if course.nutrition_advice:
        sections.append(f"# Nutrition\n\n{course.nutrition_advice}")

    for section in sections:
        for raw in section.splitlines():
            text = _EMPHASIS.sub("", raw.rstrip())
            heading = _HEADING.match(text)
            if heading:
                add(f"h{len(heading.group(1))}", heading.group(2))
            else:
                add("body", text)
    return lines


def render_pdf(lines: list[tuple[str, str]]) -> bytes:
    """Typeset lines onto A4 pages and return the PDF bytes."""
    fonts = {style: _load_font(size, bold) for style, (size, bold, _, _) in STYLES.items()}
    footer_font = _load_font(16, False)

    pages: list[Image.Image] = []
    page = draw = None
    y = PAGE_HEIGHT

    for style, text in lines:
        size, _, _, space_before = STYLES[style]
        line_height = int(size * 1.45)
        if page is None or y + space_before + line_height > PAGE_HEIGHT - MARGIN:
            page = Image.new("RGB", (PAGE_WIDTH, PAGE_HEIGHT), color=(255, 255, 255))
            draw = ImageDraw.Draw(page)
            pages.append(page)
            y = MARGIN
        else:
            y += space_before
        draw.text((MARGIN, y), text, font=fonts[style], fill=(31, 41, 55))
        y += line_height

    if not pages:
        pages.append(Image.new("RGB", (PAGE_WIDTH, PAGE_HEIGHT), color=(255, 255, 255)))

    for number, page in enumerate(pages, start=1):
        ImageDraw.Draw(page).text(
            (PAGE_WIDTH - MARGIN - 80, PAGE_HEIGHT - MARGIN // 2),
            f"{number} / {len(pages)}",
            font=footer_font,
            fill=(107, 114, 128),
        )

    buffer = BytesIO()
    pages[0].save(
        buffer,
        format="PDF",
        save_all=True,
        append_images=pages[1:],
        resolution=PAGE_DPI,
    )
    return buffer.getvalue()


class PdfService:
    """Renders course PDFs and uploads them to R2."""

    def __init__(self, storage: Optional[R2StorageService] = None):
        self.storage = storage or get_r2_service()

    async def render(self, course: Course) -> bytes:
        lines = markdown_to_lines(course)
        # PIL is CPU-bound
        return await asyncio.get_running_loop().run_in_executor(None, render_pdf, lines)

    async def generate_and_upload(self, course: Course) -> Optional[str]:
        """Render and store the PDF for the course's current generation.

        Returns:
            The PDF URL, or None when storage is not configured

        Raises:
            R2StorageError: Upload failed after retries
        """
        if not self.storage.is_configured:
            logger.warning(f"R2 storage not configured, no PDF for course {course.id}")
            return None

        pdf_bytes = await self.render(course)
        _, url = await self.storage.upload_pdf(
            pdf_bytes,
            user_id=course.user_id,
            course_id=course.id,
            generation=course.generation,
        )
        logger.info(f"PDF for course {course.id} generation {course.generation}: {len(pdf_bytes)} bytes")
        return url
