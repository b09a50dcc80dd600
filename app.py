# app.py

import logging

import dash
import dash_daq as daq
from dash import ALL, Input, Output, State, dcc, html

import config
from charts import BAR_H, RADAR_H, bar_figure, radar_figure
from config import (
    ASSESSMENT_TYPES,
    BOOLEAN,
    CATEGORIES,
    QUESTIONS,
    SCALE,
    category_name,
    validate_question_bank,
)
from exports import (
    responses_csv,
    write_plan_docx,
    write_plan_pdf,
    write_results_pdf,
    write_results_ppt,
)
from models import Assessment, responses_from_records, responses_to_records
from notifier import CollectingNotifier
from persistence import AssessmentSession, JsonFileAssessmentStore
from plan_generator import (
    PLAN_SCOPES,
    GeneratedPlan,
    generate_plan,
    nest_fields,
    procedures_from_text,
    rows_from_text,
)
from plan_templates import LIST_FIELDS, PLAN_FIELDS, PLAN_TEMPLATES, PROCEDURE_COLUMNS
from scoring import summarize
from validation import validate_response
from visibility import engine_for, strict_equals

config.configure_logging()
logger = logging.getLogger(__name__)

app = dash.Dash(__name__, suppress_callback_exceptions=True)
app.title = "BCDR Assessment"
server = app.server

STORE = JsonFileAssessmentStore(config.STORE_PATH)

GRAPH_CONFIG = {"responsive": False, "displaylogo": False, "scrollZoom": False}


def _validate_config() -> None:
    """
    Check the sanity of the question banks in `config.py`.

    Logs a warning per question with an unknown category or type, a
    negative or non-numeric weight, or a rule that is malformed or points
    at a missing question.
    """
    for assessment_type, questions in QUESTIONS.items():
        for warning in validate_question_bank(questions, CATEGORIES.get(assessment_type, [])):
            logger.warning("[config warning] %s: %s", assessment_type, warning)


_validate_config()


# ----------- Helpers -------------
def _slug(s: str):
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in s).strip("-")


def _session(org, assessment_type, notifier, current=None):
    """
    Build an `AssessmentSession`, resuming from the assessment record the
    browser last saw so that stale saves are detected.
    """
    session = AssessmentSession(
        STORE, engine_for(assessment_type), org.strip(), assessment_type, notifier
    )
    if (
        current
        and current.get("organization_id") == session.organization_id
        and current.get("type") == assessment_type
        and current.get("status") == "in_progress"
    ):
        session.assessment = Assessment.from_dict(current)
    return session


def _banner(messages):
    return [html.Div(text, className=f"banner banner-{level}") for level, text in messages]


def _labels(assessment_type):
    return [(c["id"], c["name"]) for c in CATEGORIES.get(assessment_type, [])]


# -------------- Layout --------------------
def _question_input(q, value):
    """
    Build the input control for one question.

    :param q: a `models.Question`
    :param value: the recorded answer, or None
    :return: a Dash component with a pattern-matching "q-input" id
    """
    rid = {"type": "q-input", "qid": q.id}
    if q.type == "boolean":
        return dcc.RadioItems(id=rid, options=BOOLEAN, value=value, className="likert")
    if q.type == "scale":
        lo, hi = q.scale_bounds
        step = q.options.get("step", 1) or 1
        labels = q.options.get("labels") or {}
        default_labels = {o["value"]: o["label"] for o in SCALE}
        options = []
        for v in range(int(lo), int(hi) + 1, int(step)):
            label = labels.get(str(v)) or (default_labels.get(v) if (lo, hi) == (1, 5) else None)
            options.append({"label": label or str(v), "value": v})
        # vertical scale handled by CSS
        return dcc.RadioItems(id=rid, options=options, value=value, className="likert")
    if q.type == "multi_choice":
        return dcc.Dropdown(
            id=rid, options=q.option_list, value=value, clearable=True, className="choice"
        )
    placeholder = "YYYY-MM-DD" if q.type == "date" else "Your answer"
    return dcc.Input(
        id=rid, type="text", value=value, debounce=True, placeholder=placeholder, className="textin"
    )


def build_question_card(q, response):
    """
    One question row: text, reference, input, and evidence upload when the
    question asks for evidence.
    """
    value = response.value if response else None
    children = [html.Div(q.text, className="qtext")]
    if q.description:
        children.append(html.Div(q.description, className="qdesc"))
    if q.standard_reference:
        ref = q.standard_reference
        children.append(html.Div(f"{ref.name} {ref.clause}".strip(), className="qref"))
    children.append(_question_input(q, value))
    if q.evidence_required or q.evidence_requirements:
        names = response.evidence_names() if response else []
        children += [
            html.Div(q.evidence_description or "Evidence", className="qdesc"),
            dcc.Upload(
                id={"type": "q-evidence", "qid": q.id},
                children=html.Div("Drop or select evidence files"),
                multiple=True,
                className="upload",
            ),
            html.Ul([html.Li(n) for n in names], className="evidence-list"),
        ]
        if response is not None and response.answered:
            children += [
                html.Div(msg, className="field-error") for msg in validate_response(q, response)
            ]
    return html.Div(children, className="qrow")


def _field(label, component):
    return html.Div([html.Label(label), component], className="field")


def build_plan_form():
    """Inputs for every plan field plus one text box per list field."""
    rows = []
    for f in PLAN_FIELDS:
        fid = {"type": "plan-field", "fid": f["id"]}
        if f["type"] == "textarea":
            control = dcc.Textarea(id=fid, className="textarea")
        else:
            placeholder = "YYYY-MM-DD" if f["type"] == "date" else ""
            control = dcc.Input(id=fid, type="text", placeholder=placeholder, className="textin")
        rows.append(_field(f["label"], control))
    lists = dict(LIST_FIELDS, recoveryProcedures=PROCEDURE_COLUMNS)
    for key, columns in lists.items():
        rows.append(
            _field(
                key,
                dcc.Textarea(
                    id={"type": "plan-list", "fid": key},
                    placeholder=" | ".join(columns) + "  (one row per line)",
                    className="textarea",
                ),
            )
        )
    return html.Div(rows, className="grid")


app.layout = html.Div(
    id="page-root",
    className="page theme-light",
    children=[
        dcc.Store(id="responses-store", data={}),
        dcc.Store(id="assessment-store"),
        dcc.Store(id="results-store"),
        dcc.Store(id="plan-store"),
        dcc.Store(id="theme-store", data="light"),
        # Header
        html.Div(
            [
                html.H1("Business Continuity & Disaster Recovery Assessment"),
                html.Div(
                    [
                        _field(
                            "Organization",
                            dcc.Input(
                                id="org-name",
                                placeholder="e.g., AllureAfrica",
                                debounce=True,
                                className="textin",
                            ),
                        ),
                        _field(
                            "Assessor",
                            dcc.Input(id="assessor", placeholder="Your name", className="textin"),
                        ),
                        _field(
                            "Industry",
                            dcc.Input(id="industry", placeholder="e.g., Fintech", className="textin"),
                        ),
                        _field(
                            "Assessment",
                            dcc.Dropdown(
                                id="assessment-type",
                                options=[
                                    {"label": meta["label"], "value": key}
                                    for key, meta in ASSESSMENT_TYPES.items()
                                ],
                                value="resiliency",
                                clearable=False,
                            ),
                        ),
                        _field(
                            "Dark mode",
                            daq.BooleanSwitch(
                                id="theme-switch",
                                on=False,
                                color="#4f46e5",
                                className="theme-switch",
                            ),
                        ),
                    ],
                    className="meta",
                ),
            ],
            className="header",
        ),
        dcc.Tabs(
            id="tabs",
            value="tab-assess",
            children=[
                dcc.Tab(
                    label="Assessment",
                    value="tab-assess",
                    children=[
                        html.Div(id="status-banner", className="banners"),
                        html.Div(
                            [
                                dcc.Dropdown(id="category-select", clearable=False),
                                html.Div(id="progress-text", className="progress"),
                            ],
                            className="category-row",
                        ),
                        html.Div(id="questions", className="domain-card"),
                        html.Div(
                            [
                                html.Button("Save Progress", id="save-btn", n_clicks=0, className="secondary"),
                                html.Button(
                                    "Complete Assessment", id="complete-btn", n_clicks=0, className="primary"
                                ),
                                html.Button(
                                    "Start New Assessment", id="new-btn", n_clicks=0, className="secondary"
                                ),
                            ],
                            className="export-row",
                        ),
                    ],
                ),
                dcc.Tab(
                    label="Results & Insights",
                    value="tab-results",
                    children=[
                        html.Div(id="kpis", className="kpis"),
                        # Export controls
                        html.Div(
                            [
                                html.Button("Download CSV", id="dl-csv", n_clicks=0, className="secondary"),
                                dcc.Download(id="dl-csv-out"),
                                html.Button("Download PPTX", id="dl-ppt", n_clicks=0, className="secondary"),
                                dcc.Download(id="dl-ppt-out"),
                                html.Button("Download PDF", id="dl-pdf", n_clicks=0, className="secondary"),
                                dcc.Download(id="dl-pdf-out"),
                            ],
                            className="export-row",
                        ),
                        # Charts row (fixed heights)
                        html.Div(
                            [
                                dcc.Graph(id="radar", style={"height": f"{RADAR_H}px"}, config=GRAPH_CONFIG),
                                dcc.Graph(id="bar", style={"height": f"{BAR_H}px"}, config=GRAPH_CONFIG),
                            ],
                            className="charts",
                        ),
                        html.Div(
                            [
                                html.H3("Top Recommended Actions"),
                                html.Ul(id="actions-list", className="actions"),
                            ],
                            className="col recs-col",
                        ),
                    ],
                ),
                dcc.Tab(
                    label="Plan Builder",
                    value="tab-plan",
                    children=[
                        html.Div(
                            [
                                _field(
                                    "Plan type",
                                    dcc.Dropdown(
                                        id="plan-type",
                                        options=[
                                            {"label": t.title, "value": key}
                                            for key, t in PLAN_TEMPLATES.items()
                                        ],
                                        value="bcp",
                                        clearable=False,
                                    ),
                                ),
                                _field(
                                    "Scope",
                                    dcc.RadioItems(
                                        id="plan-scope",
                                        options=[{"label": s.title(), "value": s} for s in PLAN_SCOPES],
                                        value="organization",
                                    ),
                                ),
                            ],
                            className="meta",
                        ),
                        build_plan_form(),
                        html.Div(
                            [
                                html.Button("Generate Plan", id="plan-generate", n_clicks=0, className="primary"),
                                html.Button("Download Word", id="dl-plan-docx", n_clicks=0, className="secondary"),
                                dcc.Download(id="dl-plan-docx-out"),
                                html.Button("Download PDF", id="dl-plan-pdf", n_clicks=0, className="secondary"),
                                dcc.Download(id="dl-plan-pdf-out"),
                            ],
                            className="export-row",
                        ),
                        html.Div(id="plan-banner", className="banners"),
                        html.Pre(id="plan-preview", className="plan-preview"),
                    ],
                ),
            ],
        ),
    ],
)


# -------- Assessment callbacks ------------------
@app.callback(
    Output("responses-store", "data"),
    Output("assessment-store", "data"),
    Output("status-banner", "children"),
    Input("org-name", "value"),
    Input("assessment-type", "value"),
)
def load_progress(org, assessment_type):
    """
    Resume the in-progress assessment of the selected organization and type.

    Args:
        org (str): The organization name, as entered in the "org-name" input field.
        assessment_type (str): The selected assessment type.

    Returns:
        tuple: (responses records, assessment record, banner children)
    """
    if not org or not org.strip() or not assessment_type:
        return {}, None, _banner([("info", "Enter an organization to load saved progress.")])
    notifier = CollectingNotifier()
    session = _session(org, assessment_type, notifier)
    responses = session.load()
    messages = notifier.drain()
    done = session.completed_assessment()
    if done is not None and done.completed_at:
        due = f"; next review due {done.next_review_date:%Y-%m-%d}" if done.next_review_date else ""
        messages.append(("info", f"Last completed {done.completed_at:%Y-%m-%d}{due}."))
    current = session.assessment.to_dict() if session.assessment else None
    return responses_to_records(responses), current, _banner(messages)


@app.callback(
    Output("category-select", "options"),
    Output("category-select", "value"),
    Input("assessment-type", "value"),
    Input("responses-store", "data"),
    Input("assessment-store", "data"),
    State("category-select", "value"),
)
def update_categories(assessment_type, data, current, value):
    """
    Category options labelled with their completion, keeping the selection
    (or restoring the one saved with the assessment).
    """
    if not assessment_type:
        raise dash.exceptions.PreventUpdate
    engine = engine_for(assessment_type)
    responses = responses_from_records(data)
    cats = engine.categories()
    progress = engine.category_progress(responses)
    options = [{"label": f"{category_name(c)} ({progress[c]}%)", "value": c} for c in cats]
    saved = (current or {}).get("current_category_id")
    if dash.ctx.triggered_id == "assessment-store" and saved in cats:
        value = saved
    elif value not in cats:
        value = cats[0] if cats else None
    return options, value


@app.callback(
    Output("questions", "children"),
    Output("progress-text", "children"),
    Input("responses-store", "data"),
    Input("assessment-type", "value"),
    Input("category-select", "value"),
)
def render_questions(data, assessment_type, category_id):
    """Render the visible questions of the selected category."""
    if not assessment_type:
        raise dash.exceptions.PreventUpdate
    engine = engine_for(assessment_type)
    responses = responses_from_records(data)
    shown = engine.visibility_map(responses)
    visible = engine.visible_questions(responses, category_id, shown)
    cards = [html.H3(category_name(category_id or ""), className="domain-title")]
    cards += [build_question_card(q, responses.get(q.id)) for q in visible]
    progress = (
        f"Category: {engine.progress(responses, category_id, shown)}% complete. "
        f"Overall: {engine.progress(responses, shown=shown)}% complete."
    )
    return cards, progress


@app.callback(
    Output("responses-store", "data", allow_duplicate=True),
    Input({"type": "q-input", "qid": ALL}, "value"),
    Input({"type": "q-evidence", "qid": ALL}, "filename"),
    State("responses-store", "data"),
    State("assessment-type", "value"),
    prevent_initial_call=True,
)
def record_answer(_values, _files, data, assessment_type):
    """
    Record the answer (or evidence upload) that triggered the callback.

    Changing an answer clears the answers of questions that depend on it;
    an upload adds to the evidence already attached.
    """
    trig = dash.ctx.triggered_id
    if not trig or not assessment_type:
        raise dash.exceptions.PreventUpdate
    engine = engine_for(assessment_type)
    responses = responses_from_records(data)
    qid = trig["qid"]
    previous = responses.get(qid)
    new = dash.ctx.triggered[0]["value"]

    if trig["type"] == "q-evidence":
        names = [new] if isinstance(new, str) else list(new or [])
        if not names:
            raise dash.exceptions.PreventUpdate
        responses = engine.attach_evidence(responses, qid, names)
    else:
        value = None if new in ("", []) else new
        old = previous.value if previous else None
        if old is value or strict_equals(old, value):
            raise dash.exceptions.PreventUpdate
        responses = engine.update_response(responses, qid, value)
    return responses_to_records(responses)


@app.callback(
    Output("status-banner", "children", allow_duplicate=True),
    Output("responses-store", "data", allow_duplicate=True),
    Output("assessment-store", "data", allow_duplicate=True),
    Output("tabs", "value"),
    Input("save-btn", "n_clicks"),
    Input("complete-btn", "n_clicks"),
    Input("new-btn", "n_clicks"),
    State("org-name", "value"),
    State("assessment-type", "value"),
    State("responses-store", "data"),
    State("assessment-store", "data"),
    State("category-select", "value"),
    prevent_initial_call=True,
)
def on_session_action(_save, _complete, _new, org, assessment_type, data, current, category_id):
    """
    Save, complete or restart the assessment.

    A successful completion switches to the results tab; every outcome is
    reported in the status banner.
    """
    if not org or not org.strip() or not assessment_type:
        return _banner([("error", "Enter an organization first.")]), dash.no_update, dash.no_update, dash.no_update
    notifier = CollectingNotifier()
    session = _session(org, assessment_type, notifier, current)
    responses = responses_from_records(data)
    action = dash.ctx.triggered_id
    records, record, tab = dash.no_update, dash.no_update, dash.no_update

    if action == "save-btn":
        if session.save(responses, category_id):
            record = session.assessment.to_dict()
    elif action == "complete-btn":
        done = session.complete(responses)
        for qid, msgs in session.validation.items():
            q = session.engine.get(qid)
            for msg in msgs:
                notifier.error(f"{q.text if q else qid} {msg}")
        if done is not None:
            record, tab = None, "tab-results"
    elif action == "new-btn":
        if session.start_new():
            records, record = {}, session.assessment.to_dict()
    else:
        raise dash.exceptions.PreventUpdate
    return _banner(notifier.drain()), records, record, tab


# -------- Results callbacks ------------------
@app.callback(
    Output("results-store", "data"),
    Input("responses-store", "data"),
    Input("assessment-type", "value"),
    State("org-name", "value"),
    State("assessor", "value"),
)
def on_responses(data, assessment_type, org, assessor):
    """
    Recompute scores, progress and recommendations for the results tab and
    the exports.
    """
    if not assessment_type:
        raise dash.exceptions.PreventUpdate
    summary = summarize(engine_for(assessment_type), responses_from_records(data))
    return {
        "summary": summary,
        "labels": _labels(assessment_type),
        "meta": {
            "org": org or "",
            "assessor": assessor or "",
            "title": ASSESSMENT_TYPES[assessment_type]["label"],
        },
    }


@app.callback(
    Output("kpis", "children"),
    Output("radar", "figure"),
    Output("bar", "figure"),
    Output("actions-list", "children"),
    Input("results-store", "data"),
    Input("theme-store", "data"),
    prevent_initial_call=True,
)
def update_results(data, theme):
    """
    Updates the KPIs, radar, bar and recommendations.

    Args:
        data (dict): The scored assessment, as stored in the "results-store".
        theme (str): The theme name ("light" or "dark"), as stored in the "theme-store".

    Returns:
        tuple: A tuple containing the updated KPIs, radar, bar, and recommendations.
    """
    if not data:
        raise dash.exceptions.PreventUpdate

    summary = data["summary"]
    labels = data["labels"]
    scores = summary.get("category_scores", {}) or {}
    kpi_children = [
        html.Div(
            [
                html.Div("Overall Score", className="kpi-title"),
                html.Div(f"{float(summary.get('overall', 0.0)):.1f}%", className="kpi-value"),
            ],
            className="kpi",
        ),
        html.Div(
            [
                html.Div("Completion", className="kpi-title"),
                html.Div(f"{summary.get('progress', 0)}%", className="kpi-value"),
            ],
            className="kpi",
        ),
    ]
    for cid, name in labels:
        kpi_children.append(
            html.Div(
                [
                    html.Div(name, className="kpi-title"),
                    html.Div(f"{float(scores.get(cid, 0.0)):.1f}%", className="kpi-value"),
                ],
                className="kpi",
            )
        )

    return (
        kpi_children,
        radar_figure(scores, labels, theme),
        bar_figure(summary.get("category_progress", {}), labels, theme, title="Complete (%)"),
        [
            html.Li(f"[{r['category']}] {r['action']} (current: {r['score']:.0f}%)")
            for r in summary.get("recommendations", [])
        ],
    )


# Exports
@app.callback(
    Output("dl-csv-out", "data"),
    Input("dl-csv", "n_clicks"),
    State("results-store", "data"),
    prevent_initial_call=True,
)
def download_csv(_, data):
    """Download the responses of the current assessment as a CSV file."""
    if not data:
        raise dash.exceptions.PreventUpdate
    name = _slug(data["meta"]["title"]) or "assessment"
    return dcc.send_string(responses_csv(data["summary"]), f"{name}_responses.csv")


@app.callback(
    Output("dl-ppt-out", "data"),
    Input("dl-ppt", "n_clicks"),
    State("results-store", "data"),
    prevent_initial_call=True,
)
def download_ppt(_, data):
    """
    Download the results as a PPTX file.

    Args:
        _ (int): Click count of the "Download PPTX" button.
        data (dict): The scored assessment, as stored in the "results-store".

    Returns:
        dict: dcc.Download payload containing the PPTX data.
    """
    if not data:
        raise dash.exceptions.PreventUpdate
    return dcc.send_bytes(
        lambda b: write_results_ppt(b, data["summary"], data["meta"], data["labels"]),
        f"{_slug(data['meta']['title'])}.pptx",
    )


@app.callback(
    Output("dl-pdf-out", "data"),
    Input("dl-pdf", "n_clicks"),
    State("results-store", "data"),
    State("theme-store", "data"),
    prevent_initial_call=True,
)
def download_pdf(_, data, theme):
    """Download the results as a PDF file with embedded charts."""
    if not data:
        raise dash.exceptions.PreventUpdate
    return dcc.send_bytes(
        lambda b: write_results_pdf(b, data["summary"], data["meta"], data["labels"], theme or "light"),
        f"{_slug(data['meta']['title'])}.pdf",
    )


# -------- Plan builder callbacks ------------------
@app.callback(
    Output("plan-store", "data"),
    Output("plan-preview", "children"),
    Output("plan-banner", "children"),
    Input("plan-generate", "n_clicks"),
    State("plan-type", "value"),
    State("plan-scope", "value"),
    State("org-name", "value"),
    State("industry", "value"),
    State({"type": "plan-field", "fid": ALL}, "value"),
    State({"type": "plan-field", "fid": ALL}, "id"),
    State({"type": "plan-list", "fid": ALL}, "value"),
    State({"type": "plan-list", "fid": ALL}, "id"),
    prevent_initial_call=True,
)
def on_generate_plan(_, plan_type, scope, org, industry, values, ids, list_values, list_ids):
    """
    Merge the plan builder form into the selected plan template.

    Returns:
        tuple: (plan record, preview text, banner children)
    """
    form = nest_fields({i["fid"]: v for i, v in zip(ids, values) if v not in (None, "")})
    for i, text in zip(list_ids, list_values):
        key = i["fid"]
        if key == "recoveryProcedures":
            form[key] = procedures_from_text(text)
        else:
            form[key] = rows_from_text(text, LIST_FIELDS[key])
    try:
        plan = generate_plan(plan_type, scope, form, {"name": org or "", "industry": industry or ""})
    except KeyError as e:
        logger.warning("Plan generation failed: %s", e)
        return None, "", _banner([("error", str(e))])
    record = {"plan_type": plan.plan_type, "title": plan.title, "content": plan.content}
    return record, plan.content, _banner([("success", f"{plan.title} generated")])


@app.callback(
    Output("dl-plan-docx-out", "data"),
    Input("dl-plan-docx", "n_clicks"),
    State("plan-store", "data"),
    prevent_initial_call=True,
)
def download_plan_docx(_, data):
    if not data:
        raise dash.exceptions.PreventUpdate
    plan = GeneratedPlan(**data)
    return dcc.send_bytes(lambda b: write_plan_docx(b, plan), f"{_slug(plan.title)}.docx")


@app.callback(
    Output("dl-plan-pdf-out", "data"),
    Input("dl-plan-pdf", "n_clicks"),
    State("plan-store", "data"),
    prevent_initial_call=True,
)
def download_plan_pdf(_, data):
    if not data:
        raise dash.exceptions.PreventUpdate
    plan = GeneratedPlan(**data)
    return dcc.send_bytes(lambda b: write_plan_pdf(b, plan), f"{_slug(plan.title)}.pdf")


# Theme toggle -> update page class and store
@app.callback(
    Output("page-root", "className"),
    Output("theme-store", "data"),
    Input("theme-switch", "on"),
)
def apply_theme(is_on):
    """
    Toggle the page theme class and store the current theme value.

    Args:
        is_on (bool): The on/off state of the theme switch.

    Returns:
        tuple: A pair of (page class name, theme name).
    """
    theme = "dark" if is_on else "light"
    return f"page theme-{theme}", theme


# ---------- Main -------------------
if __name__ == "__main__":
    app.run(debug=config.DEBUG)
