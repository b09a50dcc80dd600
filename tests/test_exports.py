"""
Tests for document exports.

Charts are left out of the results PDF so these run without kaleido.
"""

import io

from docx import Document
from pptx import Presentation

from exports import (
    plan_blocks,
    responses_csv,
    write_plan_docx,
    write_plan_pdf,
    write_results_pdf,
    write_results_ppt,
)
from models import Response
from plan_generator import generate_plan
from scoring import summarize
from visibility import engine_for

LABELS = [("res-gov", "Leadership and Governance"), ("res-risk", "Risk Management")]
META = {"org": "Acme & Co", "assessor": "Sam", "title": "Resiliency Scoring"}


def summary():
    return summarize(engine_for("resiliency"), {"res-gov-1": Response(True), "res-risk-1": Response(2)})


class TestResultExports:
    def test_pdf_without_charts(self):
        buf = io.BytesIO()
        write_results_pdf(buf, summary(), META, LABELS, include_charts=False)
        assert buf.getvalue().startswith(b"%PDF")

    def test_pptx_has_four_slides(self):
        buf = io.BytesIO()
        write_results_ppt(buf, summary(), META, LABELS)
        buf.seek(0)
        prs = Presentation(buf)
        assert len(prs.slides) == 4
        assert prs.slides[0].shapes.title.text == "Resiliency Scoring"

    def test_csv(self):
        text = responses_csv(summary())
        header = text.splitlines()[0]
        assert header == "id,category,text,weight,visible,value,pct"
        assert "res-gov-1" in text

    def test_csv_empty_summary(self):
        assert responses_csv({}).splitlines() == ["id,category,text,weight,visible,value,pct"]


class TestPlanExports:
    def plan(self):
        return generate_plan(
            "bcp",
            "organization",
            {"criticalFunctions": [{"name": "Payroll", "priority": "1", "rto": "4", "rpo": "1"}]},
            "Acme",
        )

    def test_plan_blocks(self):
        blocks = plan_blocks("# Title\n\n## Section\n### Sub\n- item\ntext")
        assert blocks == [
            ("h1", "Title"),
            ("h2", "Section"),
            ("h3", "Sub"),
            ("bullet", "item"),
            ("para", "text"),
        ]

    def test_docx(self):
        buf = io.BytesIO()
        write_plan_docx(buf, self.plan())
        buf.seek(0)
        doc = Document(buf)
        texts = [p.text for p in doc.paragraphs]
        assert "Business Continuity Plan" in texts
        assert "Payroll" in texts

    def test_pdf(self):
        buf = io.BytesIO()
        write_plan_pdf(buf, self.plan())
        assert buf.getvalue().startswith(b"%PDF")
