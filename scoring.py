# scoring.py

import pandas as pd

from config import RECS, category_name
from visibility import AssessmentEngine, response_value

FRAME_COLUMNS = [
    "id",
    "category_id",
    "category",
    "text",
    "type",
    "weight",
    "visible",
    "value",
    "pct",
    "evidence_required",
    "evidence_count",
]


def scale_to_pct(v, lo=1, hi=5):
    """
    Convert a scale value to a percentage of its range.

    With the default 1-5 scale:
    1  -> 0%
    3  -> 50%
    5  -> 100%
    """
    if hi == lo:
        return 100.0
    pct = (float(v) - lo) / (hi - lo) * 100
    return round(min(100.0, max(0.0, pct)), 2)


def pct_to_level(p):
    """
    Convert a percentage to a maturity level (1-5).

    0%  -> 1
    25% -> 2
    50% -> 3
    75% -> 4
    100%-> 5

    :param p: percentage (0-100)
    :return: level (1-5)
    """
    return int(min(5, max(1, round((p / 100) * 4 + 1))))


def response_to_pct(question, value):
    """
    Score one answer as a percentage.

    boolean -> 100 / 0; scale -> position within min..max; multi_choice ->
    position within the option list. Text and date answers, unknown options
    and unanswered questions are not scored (None).
    """
    if value is None:
        return None
    if question.type == "boolean":
        return 100.0 if value is True else 0.0
    if question.type == "scale":
        lo, hi = question.scale_bounds
        try:
            return scale_to_pct(value, lo, hi)
        except (TypeError, ValueError):
            return None
    if question.type == "multi_choice":
        options = question.option_list
        if value not in options:
            return None
        if len(options) == 1:
            return 100.0
        return round(options.index(value) / (len(options) - 1) * 100, 2)
    return None


def responses_frame(engine: AssessmentEngine, responses, shown=None):
    """
    One row per question with its visibility, answer and score.

    Args:
        engine: questionnaire engine
        responses: mapping of question id to response
        shown: visibility map from `engine.visibility_map`, computed if omitted

    Returns:
        pd.DataFrame: columns as in FRAME_COLUMNS
    """
    shown = shown if shown is not None else engine.visibility_map(responses)
    rows = []
    for q in engine.questions:
        value = response_value(responses, q.id)
        r = (responses or {}).get(q.id)
        evidence = getattr(r, "evidence", None) if r is not None else None
        if evidence is None and isinstance(r, dict):
            evidence = r.get("evidence")
        visible = shown[q.id]
        rows.append(
            {
                "id": q.id,
                "category_id": q.category_id,
                "category": category_name(q.category_id),
                "text": q.text,
                "type": q.type,
                "weight": float(q.weight),
                "visible": visible,
                "value": value,
                "pct": response_to_pct(q, value) if visible else None,
                "evidence_required": bool(q.evidence_required),
                "evidence_count": len(evidence or []),
            }
        )
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def compute_scores(resp_df):
    """
    Compute weighted category scores and the overall score.

    Only visible, answered and scorable questions count. Each category score
    is the weight-averaged percentage of its questions; the overall score is
    the mean of the category scores.

    Args:
        resp_df (pd.DataFrame): frame from `responses_frame`

    Returns:
        tuple: (category_scores, overall)
            category_scores (dict): category_id -> score (0-100)
            overall (float): mean of category scores, rounded to 2 decimal places
    """
    if resp_df.empty:
        return {}, 0.0
    df = resp_df.copy()
    df = df[df["visible"].astype(bool) & df["pct"].notna() & (df["weight"] > 0)]
    if df.empty:
        return {}, 0.0
    df["pct"] = df["pct"].astype(float)
    df["wx"] = df["pct"] * df["weight"]
    groups = df.groupby("category_id", as_index=False, sort=False).agg(
        score=("wx", "sum"), w=("weight", "sum")
    )
    groups["score"] = (groups["score"] / groups["w"]).round(2)
    category_scores = dict(zip(groups["category_id"], groups["score"].astype(float)))
    overall = round(float(groups["score"].mean()), 2)
    return category_scores, overall


def evidence_compliance(resp_df):
    """
    Share (%) of answered, visible, evidence-required questions that carry evidence, per category.

    Categories without any evidence-required answers are left out.
    """
    if resp_df.empty:
        return {}
    df = resp_df[
        resp_df["visible"].astype(bool)
        & resp_df["evidence_required"].astype(bool)
        & resp_df["value"].notna()
    ]
    if df.empty:
        return {}
    df = df.assign(has=(df["evidence_count"] > 0).astype(float))
    pct = (df.groupby("category_id", sort=False)["has"].mean() * 100).round(2)
    return {k: float(v) for k, v in pct.items()}


def recommendations(category_scores, limit=10):
    """
    Return at most `limit` action items, lowest scoring categories first.

    Each item is a dict with keys "category_id", "category", "score",
    "level" and "action". Actions come from `config.RECS`, using the entry
    for the highest level at or below the category's current level.
    """
    if not category_scores:
        return []
    items = []
    for cat, score in category_scores.items():
        level = pct_to_level(score)
        tiers = RECS.get(cat, {})
        eligible = [lvl for lvl in tiers if lvl <= level]
        if not eligible:
            continue
        for a in tiers[max(eligible)][:2]:
            items.append(
                {
                    "category_id": cat,
                    "category": category_name(cat),
                    "score": score,
                    "level": level,
                    "action": a,
                }
            )
    return sorted(items, key=lambda x: x["score"])[:limit]


def summarize(engine: AssessmentEngine, responses):
    """
    Everything the results view and the exporters need, as plain data.

    :return: dict with progress, category_scores, overall, evidence_compliance,
             recommendations and the response rows
    """
    shown = engine.visibility_map(responses)
    df = responses_frame(engine, responses, shown)
    scores, overall = compute_scores(df)
    return {
        "progress": engine.progress(responses, shown=shown),
        "category_progress": engine.category_progress(responses, shown),
        "category_scores": scores,
        "overall": overall,
        "evidence_compliance": evidence_compliance(df),
        "recommendations": recommendations(scores),
        "responses": df.astype(object).where(df.notna(), None).to_dict(orient="records"),
    }
