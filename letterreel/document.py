"""Single-page PDF rendering of a letter."""

import io

from PIL import Image

from .raster import RasterImage, scale_to_width

PDF_RESOLUTION = 96.0


def compose_document(header: RasterImage, body: RasterImage) -> Image.Image:
    """Stack the header above the body on a white page of the body's width."""
    header_image = scale_to_width(header.image.convert("RGBA"), body.width)
    page = Image.new("RGB", (body.width, header_image.height + body.height), "#ffffff")
    page.paste(header_image, (0, 0), header_image)
    page.paste(body.image.convert("RGB"), (0, header_image.height))
    return page


def render_pdf(header: RasterImage, body: RasterImage) -> bytes:
    """Encode the composed page as a PDF document."""
    page = compose_document(header, body)
    buffer = io.BytesIO()
    page.save(buffer, format="PDF", resolution=PDF_RESOLUTION)
    return buffer.getvalue()
