"""Confusion-matrix heatmap rendering."""

from __future__ import annotations

import io

import numpy as np
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from diabtree.records import ConfusionMatrix


def render_confusion_png(matrix: ConfusionMatrix, *, dpi: int = 100) -> bytes:
    """Render a confusion matrix as an annotated heatmap PNG.

    Predicted classes run along the x axis and actual classes along the y
    axis. Uses the object-oriented matplotlib API so concurrent requests do
    not share pyplot state.

    Args:
        matrix (ConfusionMatrix): Counts to draw.
        dpi (int): Output resolution. Defaults to 100.

    Returns:
        bytes: PNG-encoded image.
    """
    counts = matrix.to_array()
    labels = [label.value for label in matrix.labels]

    figure = Figure(figsize=(5, 5))
    FigureCanvasAgg(figure)
    axes = figure.add_subplot()
    image = axes.imshow(counts, cmap="Blues", interpolation="nearest")
    figure.colorbar(image, ax=axes)

    ticks = np.arange(len(labels))
    axes.set_xticks(ticks, labels)
    axes.set_yticks(ticks, labels)
    axes.set_xlabel("Predicted")
    axes.set_ylabel("Actual")
    axes.set_title("Confusion Matrix (training data)")

    # White text on dark cells, black on light cells
    threshold = counts.max() / 2.0 if counts.size else 0.0
    for row in range(counts.shape[0]):
        for column in range(counts.shape[1]):
            axes.text(
                column,
                row,
                format(int(counts[row, column]), "d"),
                ha="center",
                va="center",
                color="white" if counts[row, column] > threshold else "black",
                fontsize=14,
                fontweight="bold",
            )

    figure.tight_layout()
    buffer = io.BytesIO()
    figure.savefig(buffer, format="png", dpi=dpi)
    return buffer.getvalue()
