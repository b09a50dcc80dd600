# charts.py

import io

import plotly.graph_objects as go
import plotly.io as pio

# for chart sizes
RADAR_H = 360
BAR_H = 360


def _base_fig_layout(fig, theme="light", height=360):
    """
    Apply a consistent layout to a figure.

    This sets the font to a contrasting color for light/dark themes,
    and sets the grid color to a contrasting color. It also sets the
    axis colors to match the text color.

    :param fig: a figure to update
    :param theme: a string, either "light" or "dark"
    :param height: the height of the figure in pixels
    :return: the updated figure
    """

    font_color = "#f6f7fb" if theme == "dark" else "#0b1020"
    grid_color = "#334155" if theme == "dark" else "#CBD5E1"
    axis_color = font_color
    fig.update_layout(
        autosize=False,
        height=height,
        margin=dict(l=30, r=30, t=30, b=30),
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
        font=dict(color=font_color),
        xaxis=dict(
            showgrid=True,
            gridcolor=grid_color,
            zeroline=False,
            linecolor=axis_color,
            ticks="outside",
            fixedrange=True,
        ),
        yaxis=dict(
            showgrid=True,
            gridcolor=grid_color,
            zeroline=False,
            linecolor=axis_color,
            ticks="outside",
            fixedrange=True,
        ),
        uirevision="keep",
    )
    return fig


def radar_figure(scores, labels, theme="light"):
    """
    Return a radar figure of category scores.

    Args:
        scores (dict): mapping of category id to score
        labels (list): (category_id, display name) pairs, in axis order
        theme (str, optional): light or dark. Defaults to "light".

    Returns:
        go.Figure: radar figure
    """
    cats = [name for _, name in labels]
    vals = [float(scores.get(cid, 0.0)) for cid, _ in labels]
    fig = go.Figure()
    if cats:
        fig.add_trace(
            go.Scatterpolar(
                r=vals + vals[:1],
                theta=cats + cats[:1],
                fill="toself",
                name="Score",
                line=dict(width=2),
                marker=dict(size=4),
                cliponaxis=True,
            )
        )
    grid_color = "#334155" if theme == "dark" else "#CBD5E1"
    fig.update_layout(
        autosize=False,
        height=RADAR_H,
        polar=dict(
            radialaxis=dict(
                range=[0, 100],
                autorange=False,
                tick0=0,
                dtick=20,
                gridcolor=grid_color,
                showline=True,
                linewidth=1,
            ),
            angularaxis=dict(gridcolor=grid_color, showline=True, linewidth=1),
        ),
        uirevision="keep",
    )
    return _base_fig_layout(fig, theme, height=RADAR_H)


def bar_figure(values, labels, theme="light", title=None):
    """
    Return a bar figure with one bar per category (scores or progress).

    Args:
        values (dict): mapping of category id to a 0-100 value
        labels (list): (category_id, display name) pairs
        theme (str, optional): light or dark. Defaults to "light".
        title (str, optional): y-axis title

    Returns:
        go.Figure: bar figure
    """
    names = [name for _, name in labels]
    vals = [float(values.get(cid, 0.0)) for cid, _ in labels]
    fig = go.Figure(go.Bar(x=names, y=vals))
    fig.update_layout(
        autosize=False,
        height=BAR_H,
        xaxis=dict(categoryorder="array", categoryarray=names, fixedrange=True),
        yaxis=dict(range=[0, 100], fixedrange=True, tick0=0, dtick=20, title=title or ""),
        uirevision="keep",
    )
    return _base_fig_layout(fig, theme, height=BAR_H)


def img_from_fig(fig, width=720, height=420, scale=2):
    """
    Convert a plotly figure to a PNG image bytes buffer, for the PDF report.

    Args:
        fig (plotly.graph_objects.Figure): The figure to convert.
        width (int, optional): Image width in pixels. Defaults to 720.
        height (int, optional): Image height in pixels. Defaults to 420.
        scale (int, optional): Image resolution multiplier. Defaults to 2.

    Returns:
        io.BytesIO: A bytes buffer containing the PNG image data.
    """
    # static export goes through kaleido
    png_bytes = pio.to_image(fig, format="png", width=width, height=height, scale=scale)
    return io.BytesIO(png_bytes)
