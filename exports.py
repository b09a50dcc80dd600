# exports.py

import logging
from xml.sax.saxutils import escape

import pandas as pd
from docx import Document
from pptx import Presentation
from pptx.util import Inches
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Image as RLImage
from reportlab.platypus import (ListFlowable, ListItem, Paragraph,
                                SimpleDocTemplate, Spacer, Table, TableStyle)

from charts import bar_figure, img_from_fig, radar_figure

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["id", "category", "text", "weight", "visible", "value", "pct"]

_TABLE_STYLE = [
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e9ebf3")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#0b1020")),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
    ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
    ("TOPPADDING", (0, 0), (-1, 0), 6),
]


def _rec_line(r):
    return f"[{r['category']}] {r['action']} (current: {r['score']:.0f}%)"


# ---------- Assessment results ----------
def responses_csv(summary) -> str:
    """
    Responses of a summary as CSV text.

    Args:
        summary (dict): output of `scoring.summarize`

    Returns:
        str: CSV with one row per question
    """
    df = pd.DataFrame(summary.get("responses", []), columns=None)
    if df.empty:
        df = pd.DataFrame(columns=CSV_COLUMNS)
    return df[[c for c in CSV_COLUMNS if c in df.columns]].to_csv(index=False)


def write_results_ppt(buf, summary, meta, labels):
    """
    Write a PowerPoint presentation with the following slides to a bytes buffer.

    1. Title slide with organization, assessor and assessment type.
    2. Summary slide with overall score and completion.
    3. Category scores table.
    4. Top recommended actions.

    Args:
        buf (BytesIO): A BytesIO object to write the presentation to.
        summary (dict): output of `scoring.summarize`
        meta (dict): "org", "assessor" and "title"
        labels (list): (category_id, name) pairs in display order

    Returns:
        None
    """
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[0])
    slide.shapes.title.text = meta.get("title", "BCDR Assessment")
    slide.placeholders[1].text = (
        f"Organization: {meta.get('org', '')}\n"
        f"Assessor: {meta.get('assessor', '')}"
    )

    slide = prs.slides.add_slide(prs.slide_layouts[1])
    slide.shapes.title.text = "Summary"
    body = slide.shapes.placeholders[1].text_frame
    body.clear()
    body.paragraphs[0].text = f"Overall Score: {summary.get('overall', 0):.1f}%"
    body.add_paragraph().text = f"Completion: {summary.get('progress', 0)}%"
    body.add_paragraph().text = "Method: weighted category scores over visible, answered questions."

    slide = prs.slides.add_slide(prs.slide_layouts[5])
    slide.shapes.title.text = "Category Scores"
    scores = summary.get("category_scores", {})
    progress = summary.get("category_progress", {})
    rows = len(labels) + 1
    table = slide.shapes.add_table(
        rows, 3, Inches(0.8), Inches(1.5), Inches(8.0), Inches(0.8 + 0.35 * rows)
    ).table
    table.cell(0, 0).text = "Category"
    table.cell(0, 1).text = "Score (%)"
    table.cell(0, 2).text = "Complete (%)"
    for i, (cid, name) in enumerate(labels, start=1):
        table.cell(i, 0).text = name
        table.cell(i, 1).text = f"{float(scores.get(cid, 0.0)):.1f}"
        table.cell(i, 2).text = f"{progress.get(cid, 0)}"

    slide = prs.slides.add_slide(prs.slide_layouts[1])
    slide.shapes.title.text = "Top Recommended Actions"
    tf = slide.placeholders[1].text_frame
    tf.clear()
    for rec in summary.get("recommendations", []):
        tf.add_paragraph().text = _rec_line(rec)
    prs.save(buf)


def write_results_pdf(buf, summary, meta, labels, theme="light", include_charts=True):
    """
    Write the results report as PDF.

    Charts are rendered to PNG through kaleido; pass `include_charts=False`
    where kaleido is not available.
    """
    doc = SimpleDocTemplate(
        buf, pagesize=A4, leftMargin=16, rightMargin=16, topMargin=16, bottomMargin=16
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph(f"<b>{escape(meta.get('title', 'BCDR Assessment'))}</b>", styles["Title"]),
        Spacer(1, 8),
        Paragraph(
            f"Organization: {escape(meta.get('org', ''))}&nbsp;&nbsp;&nbsp; "
            f"Assessor: {escape(meta.get('assessor', ''))}",
            styles["Normal"],
        ),
        Spacer(1, 10),
        Paragraph(f"<b>Overall Score:</b> {summary.get('overall', 0):.1f}%", styles["Heading3"]),
        Paragraph(f"<b>Completion:</b> {summary.get('progress', 0)}%", styles["Normal"]),
        Spacer(1, 8),
    ]

    scores = summary.get("category_scores", {})
    progress = summary.get("category_progress", {})
    evidence = summary.get("evidence_compliance", {})
    tbl_data = [["Category", "Score (%)", "Complete (%)", "Evidence (%)"]] + [
        [
            name,
            f"{float(scores.get(cid, 0.0)):.1f}",
            f"{progress.get(cid, 0)}",
            "" if cid not in evidence else f"{evidence[cid]:.0f}",
        ]
        for cid, name in labels
    ]
    avail = A4[0] - 72
    col0 = 200
    rest = (avail - col0) / 3
    tbl = Table(tbl_data, colWidths=[col0, rest, rest, rest], hAlign="LEFT")
    tbl.setStyle(TableStyle(_TABLE_STYLE))
    story += [
        Paragraph("<b>Category Scores</b>", styles["Heading3"]),
        Spacer(1, 6),
        tbl,
        Spacer(1, 12),
    ]

    if include_charts:
        figs = [
            ("Category Radar", radar_figure(scores, labels, theme)),
            ("Completion by Category", bar_figure(progress, labels, theme)),
        ]
        for title, fig in figs:
            story += [Paragraph(f"<b>{title}</b>", styles["Heading3"]), Spacer(1, 6)]
            img_buf = img_from_fig(fig, width=520, height=320, scale=2)
            story += [RLImage(img_buf, width=520, height=320), Spacer(1, 12)]

    recs = summary.get("recommendations", [])
    if recs:
        bullets = ListFlowable(
            [ListItem(Paragraph(escape(_rec_line(r)), styles["Normal"])) for r in recs],
            bulletType="bullet",
        )
        story += [
            Paragraph("<b>Top Recommended Actions</b>", styles["Heading3"]),
            Spacer(1, 6),
            bullets,
        ]
    doc.build(story)


# ---------- Plans ----------
def plan_blocks(content):
    """
    Split generated plan text into (kind, text) blocks.

    kind is "h1", "h2", "h3", "bullet" or "para"; blank lines are dropped.
    """
    blocks = []
    for line in (content or "").splitlines():
        s = line.strip()
        if not s:
            continue
        if s.startswith("### "):
            blocks.append(("h3", s[4:]))
        elif s.startswith("## "):
            blocks.append(("h2", s[3:]))
        elif s.startswith("# "):
            blocks.append(("h1", s[2:]))
        elif s.startswith("- "):
            blocks.append(("bullet", s[2:]))
        else:
            blocks.append(("para", s))
    return blocks


def write_plan_pdf(buf, plan):
    """Write a `GeneratedPlan` as PDF."""
    doc = SimpleDocTemplate(buf, pagesize=A4, title=plan.title)
    styles = getSampleStyleSheet()
    style_for = {"h1": "Title", "h2": "Heading2", "h3": "Heading3", "para": "Normal"}
    story = []
    bullets = []

    def flush():
        if bullets:
            story.append(ListFlowable(list(bullets), bulletType="bullet"))
            bullets.clear()

    for kind, text in plan_blocks(plan.content):
        if kind == "bullet":
            bullets.append(ListItem(Paragraph(escape(text), styles["Normal"])))
            continue
        flush()
        story.append(Paragraph(escape(text), styles[style_for[kind]]))
        story.append(Spacer(1, 4))
    flush()
    if not story:
        story.append(Paragraph(escape(plan.title), styles["Title"]))
    doc.build(story)


def write_plan_docx(buf, plan):
    """Write a `GeneratedPlan` as a Word document."""
    document = Document()
    document.core_properties.title = plan.title
    levels = {"h1": 0, "h2": 1, "h3": 2}
    for kind, text in plan_blocks(plan.content):
        if kind in levels:
            document.add_heading(text, level=levels[kind])
        elif kind == "bullet":
            document.add_paragraph(text, style="List Bullet")
        else:
            document.add_paragraph(text)
    document.save(buf)
    logger.debug("Wrote Word document for %s", plan.plan_type)
