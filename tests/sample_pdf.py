import fitz


def make_pdf(pages=((612, 792), (612, 792), (842, 595)), rotate_last: int = 0) -> bytes:
    """Build a small PDF with a black square and a label on every page."""
    doc = fitz.open()
    for i, (w, h) in enumerate(pages):
        page = doc.new_page(width=w, height=h)
        page.draw_rect(fitz.Rect(100, 100, 150, 140), color=(0, 0, 0), fill=(0, 0, 0))
        page.insert_text((72, 72), f"Page {i + 1}", fontsize=18)
    if rotate_last:
        doc[-1].set_rotation(rotate_last)
    data = doc.tobytes()
    doc.close()
    return data
