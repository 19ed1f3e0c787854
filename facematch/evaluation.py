"""
Threshold Calibration for Distance-Based Face Matching.

The matcher accepts a pair of descriptors as the same identity when their
Euclidean distance is strictly below a threshold. This module measures how
good a given threshold is on labelled pairs and finds the Equal Error Rate
operating point, so the threshold can be re-tuned whenever the extractor
model changes.

Usage:
    from facematch.evaluation import ThresholdCalibrator, gallery_pairs

    distances, labels = gallery_pairs(store.list_all())
    result = ThresholdCalibrator(threshold=0.4).evaluate(distances, labels)
    print(f"FAR: {result.far:.3f}, FRR: {result.frr:.3f}, EER: {result.eer:.3f}")
    plot_calibration(result, save_dir="output/calibration")
"""

import itertools
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from sklearn.metrics import (
    ConfusionMatrixDisplay,
    confusion_matrix,
    precision_recall_fscore_support,
    roc_auc_score,
    roc_curve,
)

from facematch.descriptor import distance
from facematch.gallery_store import GalleryEntry

logger = logging.getLogger(__name__)

REPORT_FILENAME = "calibration_report.png"


@dataclass
class CalibrationResult:
    """
    Metrics of one threshold over a set of labelled pairs.

    far: impostor pairs accepted / impostor pairs
    frr: genuine pairs rejected / genuine pairs
    tar: 1 - frr
    eer / eer_threshold: error rate and distance where FAR == FRR
    """

    threshold: float
    distances: np.ndarray
    labels: np.ndarray
    predictions: np.ndarray
    confusion_matrix: np.ndarray
    fpr: np.ndarray
    tpr: np.ndarray

    accuracy: float
    precision: float
    recall: float
    f1_score: float
    far: float
    frr: float
    eer: float
    eer_threshold: float
    auc_score: float

    @property
    def tar(self) -> float:
        return 1.0 - self.frr

    def summary(self) -> Dict[str, float]:
        """Rates shown in the metrics panel of the report."""
        return {
            "Accuracy": self.accuracy,
            "Precision": self.precision,
            "Recall": self.recall,
            "F1": self.f1_score,
            "FAR": self.far,
            "FRR": self.frr,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "threshold": self.threshold,
            "pairs": int(self.labels.size),
            "genuine_pairs": int(np.count_nonzero(self.labels == 1)),
            "impostor_pairs": int(np.count_nonzero(self.labels == 0)),
        }
        for key in ("accuracy", "precision", "recall", "f1_score", "far", "frr", "tar",
                    "eer", "eer_threshold"):
            data[key] = round(float(getattr(self, key)), 4)
        data["auc"] = round(float(self.auc_score), 4)
        return data


def gallery_pairs(entries: Sequence[GalleryEntry]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build every unordered pair of gallery entries.

    Returns:
        (distances, labels) where label 1 marks two entries of the same
        identity (genuine) and 0 two different identities (impostor).
    """
    pairs = list(itertools.combinations(entries, 2))
    distances = np.fromiter((distance(a.descriptor, b.descriptor) for a, b in pairs),
                            dtype=np.float64, count=len(pairs))
    labels = np.fromiter((a.identity == b.identity for a, b in pairs),
                         dtype=np.int32, count=len(pairs))
    return distances, labels


class ThresholdCalibrator:
    """
    Evaluate a distance threshold on genuine/impostor pairs.

    Args:
        threshold: Pairs with distance < threshold are accepted.
    """

    def __init__(self, threshold: float = 0.4):
        self.threshold = threshold

    def evaluate(self, distances: Sequence[float], labels: Sequence[int]) -> CalibrationResult:
        """
        Compute acceptance metrics, ROC AUC and the EER point.

        Args:
            distances: Euclidean distances of descriptor pairs.
            labels: Ground truth (1 = genuine, 0 = impostor).

        Raises:
            ValueError: On length mismatch or when a class is missing.
        """
        distances = np.asarray(distances, dtype=np.float64)
        labels = np.asarray(labels, dtype=np.int32)

        if distances.shape != labels.shape:
            raise ValueError(f"Got {distances.size} distances but {labels.size} labels")
        if np.unique(labels).size != 2:
            raise ValueError("Calibration needs both genuine (1) and impostor (0) pairs")

        predictions = (distances < self.threshold).astype(np.int32)

        cm = confusion_matrix(labels, predictions, labels=[0, 1])
        tn, fp, fn, tp = cm.ravel()
        precision, recall, f1, _ = precision_recall_fscore_support(
            labels, predictions, average="binary", zero_division=0
        )

        # Higher score must mean "more alike", so the ROC runs on -distance
        scores = -distances
        fpr, tpr, score_thresholds = roc_curve(labels, scores)
        eer, eer_threshold = _equal_error_rate(fpr, tpr, score_thresholds)

        result = CalibrationResult(
            threshold=self.threshold,
            distances=distances,
            labels=labels,
            predictions=predictions,
            confusion_matrix=cm,
            fpr=fpr,
            tpr=tpr,
            accuracy=float((tp + tn) / labels.size),
            precision=float(precision),
            recall=float(recall),
            f1_score=float(f1),
            far=float(fp / (fp + tn)),
            frr=float(fn / (fn + tp)),
            eer=eer,
            eer_threshold=eer_threshold,
            auc_score=float(roc_auc_score(labels, scores)),
        )
        logger.info(
            f"Threshold {self.threshold}: FAR={result.far:.3f}, FRR={result.frr:.3f}, "
            f"EER={eer:.3f} at distance {eer_threshold:.3f}"
        )
        return result


def _equal_error_rate(fpr, tpr, score_thresholds) -> Tuple[float, float]:
    """EER and the distance it occurs at, from ROC points over -distance scores."""
    fnr = 1.0 - tpr
    i = int(np.nanargmin(np.abs(fpr - fnr)))
    score = score_thresholds[i]
    # The first ROC point sits at an infinite score (nothing accepted)
    at_distance = float(-score) if np.isfinite(score) else 0.0
    return float((fpr[i] + fnr[i]) / 2.0), at_distance


def sweep_thresholds(
    distances: Sequence[float],
    labels: Sequence[int],
    thresholds: Sequence[float],
) -> List[Dict[str, float]]:
    """FAR/FRR at each candidate threshold, for choosing an operating point."""
    distances = np.asarray(distances, dtype=np.float64)
    labels = np.asarray(labels, dtype=np.int32)
    n_impostor = max(int(np.sum(labels == 0)), 1)
    n_genuine = max(int(np.sum(labels == 1)), 1)

    rows = []
    for t in thresholds:
        accepted = distances < t
        rows.append({
            "threshold": float(t),
            "far": float(np.sum(accepted & (labels == 0)) / n_impostor),
            "frr": float(np.sum(~accepted & (labels == 1)) / n_genuine),
        })
    return rows


def plot_calibration(
    result: CalibrationResult,
    save_dir: Optional[str] = None,
    show: bool = False,
) -> Optional[str]:
    """
    Draw a 2x2 report: distance histogram, ROC, confusion matrix and rates.

    Args:
        result: Output of ThresholdCalibrator.evaluate().
        save_dir: If given, the figure is written there as calibration_report.png.
        show: Display the figure interactively.

    Returns:
        Path of the saved figure, or None.
    """
    fig, ((ax_hist, ax_roc), (ax_cm, ax_bar)) = plt.subplots(2, 2, figsize=(13, 10))

    genuine = result.distances[result.labels == 1]
    impostor = result.distances[result.labels == 0]
    bins = np.linspace(0.0, max(float(result.distances.max()), result.threshold) * 1.05, 30)
    ax_hist.hist(genuine, bins=bins, alpha=0.6, color="tab:green", label=f"Genuine ({genuine.size})")
    ax_hist.hist(impostor, bins=bins, alpha=0.6, color="tab:red", label=f"Impostor ({impostor.size})")
    ax_hist.axvline(result.threshold, color="k", ls="--", label=f"threshold = {result.threshold:.2f}")
    ax_hist.axvline(result.eer_threshold, color="tab:gray", ls=":", label=f"EER point = {result.eer_threshold:.2f}")
    ax_hist.set(xlabel="Euclidean distance", ylabel="Pairs", title="Distance distribution")
    ax_hist.legend(fontsize=8)

    ax_roc.plot(result.fpr, result.tpr, color="tab:blue", label=f"AUC = {result.auc_score:.3f}")
    ax_roc.plot([0, 1], [0, 1], color="tab:gray", ls=":", lw=1)
    ax_roc.scatter([result.far], [result.tar], color="k", zorder=3, label="current threshold")
    ax_roc.set(xlabel="FAR", ylabel="TAR", title=f"ROC (EER = {result.eer:.3f})")
    ax_roc.legend(loc="lower right", fontsize=8)

    ConfusionMatrixDisplay(result.confusion_matrix, display_labels=["impostor", "genuine"]).plot(
        ax=ax_cm, colorbar=False
    )
    ax_cm.set_title("Decisions at threshold")

    summary = result.summary()
    positions = np.arange(len(summary))
    ax_bar.bar(positions, list(summary.values()), color="tab:blue")
    ax_bar.set_xticks(positions, list(summary.keys()))
    ax_bar.set_ylim(0, 1.1)
    ax_bar.set_title("Rates")
    for x, value in zip(positions, summary.values()):
        ax_bar.annotate(f"{value:.3f}", (x, value), ha="center", va="bottom",
                        xytext=(0, 3), textcoords="offset points", fontsize=8)

    fig.tight_layout()

    path = None
    if save_dir:
        os.makedirs(save_dir, exist_ok=True)
        path = os.path.join(save_dir, REPORT_FILENAME)
        fig.savefig(path, dpi=120)
        logger.info(f"Calibration report saved: {path}")
    if show:
        plt.show()
    plt.close(fig)
    return path
