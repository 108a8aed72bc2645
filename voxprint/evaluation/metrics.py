"""
Metrics for evaluating speaker identification runs
"""

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from sklearn.metrics import (
    accuracy_score, classification_report, confusion_matrix,
    precision_recall_fscore_support
)

from voxprint.models.voice_print import MatchResult
from voxprint.utils.file_utils import ensure_dir_exists, save_json


@dataclass(frozen=True)
class IdentificationRecord:
    """Outcome of identifying one labeled sample"""

    true_speaker: str
    predicted: str
    likelihood: int
    distance: float
    rank: Optional[int]  # 1-based position of the true speaker, None if not enrolled
    processing_time_ms: float

    @property
    def correct(self) -> bool:
        return self.predicted == self.true_speaker


def describe(values: Iterable[float], unit: str = "") -> Dict[str, float]:
    """Mean/std/min/max/median/p95 of a series, keys suffixed with unit"""
    data = np.asarray(list(values), dtype=float)
    if data.size == 0:
        return {}
    suffix = f"_{unit}" if unit else ""
    return {
        f"mean{suffix}": float(data.mean()),
        f"std{suffix}": float(data.std()),
        f"min{suffix}": float(data.min()),
        f"max{suffix}": float(data.max()),
        f"median{suffix}": float(np.median(data)),
        f"p95{suffix}": float(np.percentile(data, 95)),
    }


class IdentificationMetrics:
    """
    Accumulates ranked identification results for samples of known speakers.

    Besides top-1 accuracy it tracks where the true speaker landed in the
    ranking, so top-N accuracy can be reported for any N.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.records: List[IdentificationRecord] = []

    def add_result(self, true_speaker, matches: Sequence[MatchResult], processing_time: float):
        """
        Record one identification

        Args:
            true_speaker: Key of the speaker who actually recorded the sample
            matches: Ranked results of ``MatchingEngine.identify``
            processing_time: Identification time (ms)
        """
        if not matches:
            raise ValueError("Cannot record an identification without results")

        true_speaker = str(true_speaker)
        ranked_keys = [str(match.key) for match in matches]
        rank = ranked_keys.index(true_speaker) + 1 if true_speaker in ranked_keys else None

        best = matches[0]
        self.records.append(IdentificationRecord(
            true_speaker=true_speaker,
            predicted=ranked_keys[0],
            likelihood=int(best.likelihood),
            distance=float(best.distance),
            rank=rank,
            processing_time_ms=float(processing_time),
        ))

    def __len__(self):
        return len(self.records)

    def _labels(self) -> Tuple[List[str], List[str]]:
        return ([r.true_speaker for r in self.records],
                [r.predicted for r in self.records])

    def top_n_accuracy(self, n: int) -> float:
        """Share of samples whose true speaker ranked within the first n matches"""
        if not self.records:
            return 0.0
        hits = sum(1 for r in self.records if r.rank is not None and r.rank <= n)
        return hits / len(self.records)

    def calculate_accuracy_metrics(self) -> Dict[str, float]:
        """Top-1 accuracy, weighted precision/recall/F1 and top-3 accuracy"""
        if not self.records:
            return {}

        y_true, y_pred = self._labels()
        precision, recall, f1, _ = precision_recall_fscore_support(
            y_true, y_pred, average='weighted', zero_division=0
        )
        return {
            'accuracy': float(accuracy_score(y_true, y_pred)),
            'precision': float(precision),
            'recall': float(recall),
            'f1_score': float(f1),
            'top_3_accuracy': self.top_n_accuracy(3),
            'total_predictions': len(self.records),
        }

    def calculate_likelihood_metrics(self) -> Dict[str, float]:
        """Likelihood of the top match, overall and split by correctness"""
        if not self.records:
            return {}

        metrics = describe(r.likelihood for r in self.records)
        correct = [r.likelihood for r in self.records if r.correct]
        wrong = [r.likelihood for r in self.records if not r.correct]
        if correct:
            metrics['mean_correct'] = float(np.mean(correct))
        if wrong:
            metrics['mean_incorrect'] = float(np.mean(wrong))
        return metrics

    def calculate_timing_metrics(self) -> Dict[str, float]:
        """Identification time statistics"""
        return describe((r.processing_time_ms for r in self.records), unit="ms")

    def calculate_speaker_metrics(self) -> Dict[str, Dict[str, float]]:
        """Per-speaker accuracy and averages"""
        by_speaker: Dict[str, List[IdentificationRecord]] = {}
        for record in self.records:
            by_speaker.setdefault(record.true_speaker, []).append(record)

        return {
            speaker: {
                'accuracy': sum(r.correct for r in records) / len(records),
                'samples': len(records),
                'correct': sum(r.correct for r in records),
                'mean_likelihood': float(np.mean([r.likelihood for r in records])),
                'mean_time_ms': float(np.mean([r.processing_time_ms for r in records])),
            }
            for speaker, records in sorted(by_speaker.items())
        }

    def get_confusion_matrix(self) -> Tuple[np.ndarray, List[str]]:
        """
        Confusion matrix of true vs. top-ranked speaker

        Returns:
            Tuple (confusion matrix, sorted list of labels)
        """
        if not self.records:
            return np.array([]), []

        y_true, y_pred = self._labels()
        labels = sorted(set(y_true) | set(y_pred))
        return confusion_matrix(y_true, y_pred, labels=labels), labels

    def get_full_report(self) -> Dict[str, Any]:
        """Everything above in one JSON-ready dict"""
        report = {
            'generated_at': time.strftime('%Y-%m-%d %H:%M:%S'),
            'speakers': len({r.true_speaker for r in self.records}),
            'accuracy': self.calculate_accuracy_metrics(),
            'likelihood': self.calculate_likelihood_metrics(),
            'timing': self.calculate_timing_metrics(),
            'per_speaker': self.calculate_speaker_metrics(),
            'records': [asdict(r) for r in self.records],
        }
        if self.records:
            y_true, y_pred = self._labels()
            report['classification_report'] = classification_report(
                y_true, y_pred, output_dict=True, zero_division=0
            )
        return report

    def save_report(self, output_file: str):
        save_json(self.get_full_report(), output_file)
        self.logger.info(f"Evaluation report written to {output_file}")

    def print_summary(self):
        """Print a short evaluation summary to stdout"""
        if not self.records:
            print("No identification results to summarize")
            return

        accuracy = self.calculate_accuracy_metrics()
        likelihood = self.calculate_likelihood_metrics()
        timing = self.calculate_timing_metrics()

        line = "-" * 56
        print(f"\n{line}\nIdentification of {len(self.records)} samples\n{line}")
        print(f"Top-1 accuracy   {accuracy['accuracy']:.2%}")
        print(f"Top-3 accuracy   {accuracy['top_3_accuracy']:.2%}")
        print(f"Precision        {accuracy['precision']:.2%}")
        print(f"Recall           {accuracy['recall']:.2%}")
        print(f"F1-score         {accuracy['f1_score']:.2%}")
        print(f"Likelihood       {likelihood['mean']:.1f} "
              f"(correct {likelihood.get('mean_correct', 0):.1f}, "
              f"wrong {likelihood.get('mean_incorrect', 0):.1f})")
        print(f"Time per sample  {timing['mean_ms']:.1f} ms (p95 {timing['p95_ms']:.1f} ms)")
        print(line)
        for speaker, stats in self.calculate_speaker_metrics().items():
            print(f"{speaker:<24} {stats['accuracy']:>7.1%}  ({stats['samples']} samples)")
        print(line)

    def plot_confusion_matrix(self, output_file: str, figsize: Tuple[int, int] = (10, 8)) -> Optional[Path]:
        """
        Save a heatmap of the row-normalized confusion matrix

        Args:
            output_file: Image path
            figsize: Figure size in inches

        Returns:
            Path of the saved image, or None when nothing was recorded
        """
        cm, labels = self.get_confusion_matrix()
        if cm.size == 0:
            self.logger.warning("Nothing recorded, confusion matrix not plotted")
            return None

        row_sums = cm.sum(axis=1, keepdims=True)
        share = np.divide(cm * 100.0, row_sums, out=np.zeros(cm.shape), where=row_sums > 0)

        output_path = Path(output_file)
        ensure_dir_exists(output_path.parent)

        fig, ax = plt.subplots(figsize=figsize)
        try:
            sns.heatmap(share, annot=True, fmt='.1f', cmap='Blues', ax=ax,
                        xticklabels=labels, yticklabels=labels,
                        cbar_kws={'label': '% of samples'})
            ax.set_title(f'Speaker identification ({len(self.records)} samples)')
            ax.set_xlabel('Top-ranked speaker')
            ax.set_ylabel('True speaker')
            ax.tick_params(axis='x', labelrotation=45)
            fig.tight_layout()
            fig.savefig(output_path, dpi=150, bbox_inches='tight')
        finally:
            plt.close(fig)

        self.logger.info(f"Confusion matrix plotted to {output_path}")
        return output_path

    def clear(self):
        self.records.clear()
        self.logger.debug("Metrics cleared")
