"""Greedy decision trees and bootstrap-aggregated forests."""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import partial
from typing import Literal, Sequence

from common.logging import get_logger
from common.tasks import run_concurrently

from .inputs import Matrix, Vector, check_classification_target, validate_features, validate_training_data
from .splitter import LinearCongruentialGenerator

logger = get_logger("ml_pipeline.trees")

TaskType = Literal["classification", "regression"]

# A split has to beat the parent impurity by more than float noise.
MIN_GAIN = 1e-12


@dataclass(frozen=True, slots=True)
class Leaf:
    value: float


@dataclass(frozen=True, slots=True)
class SplitNode:
    feature_index: int
    threshold: float
    left: "Node"
    right: "Node"


Node = Leaf | SplitNode


@dataclass(frozen=True, slots=True)
class DecisionTreeModel:
    root: Node
    max_depth: int
    min_samples: int
    task_type: TaskType
    n_features: int

    @property
    def depth(self) -> int:
        return node_depth(self.root)


@dataclass(frozen=True, slots=True)
class RandomForestModel:
    trees: tuple[DecisionTreeModel, ...]
    n_trees: int
    max_depth: int
    min_samples: int
    task_type: TaskType
    n_features: int
    bootstrap: bool = True
    seed: int = 42


def node_depth(node: Node) -> int:
    if isinstance(node, Leaf):
        return 0
    return 1 + max(node_depth(node.left), node_depth(node.right))


def majority(labels: Sequence[float]) -> float:
    """Most frequent label; ties go to the smallest label."""

    counts: dict[float, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    return min(counts, key=lambda label: (-counts[label], label))


def _gini(counts: dict[float, int], total: int) -> float:
    if total == 0:
        return 0.0
    return 1.0 - sum((count / total) ** 2 for count in counts.values())


def _variance(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return sum((value - mean) ** 2 for value in values) / len(values)


class _ClassificationSweep:
    def __init__(self, labels: Sequence[float]):
        self.left: dict[float, int] = {}
        self.right: dict[float, int] = {}
        for label in labels:
            self.right[label] = self.right.get(label, 0) + 1
        self.n_left, self.n_right = 0, len(labels)

    def move_left(self, label: float) -> None:
        self.left[label] = self.left.get(label, 0) + 1
        self.right[label] -= 1
        self.n_left += 1
        self.n_right -= 1

    def child_impurity(self) -> float:
        total = self.n_left + self.n_right
        return (
            self.n_left / total * _gini(self.left, self.n_left)
            + self.n_right / total * _gini(self.right, self.n_right)
        )


class _RegressionSweep:
    """Running sums centred on the node mean to keep cancellation small."""

    def __init__(self, labels: Sequence[float]):
        self.centre = sum(labels) / len(labels)
        shifted = [label - self.centre for label in labels]
        self.left_sum = self.left_sq = 0.0
        self.right_sum = sum(shifted)
        self.right_sq = sum(value * value for value in shifted)
        self.n_left, self.n_right = 0, len(labels)

    def move_left(self, label: float) -> None:
        value = label - self.centre
        self.left_sum += value
        self.left_sq += value * value
        self.right_sum -= value
        self.right_sq -= value * value
        self.n_left += 1
        self.n_right -= 1

    @staticmethod
    def _var(total: float, squares: float, count: int) -> float:
        if count == 0:
            return 0.0
        return max(squares / count - (total / count) ** 2, 0.0)

    def child_impurity(self) -> float:
        total = self.n_left + self.n_right
        return (
            self.n_left / total * self._var(self.left_sum, self.left_sq, self.n_left)
            + self.n_right / total * self._var(self.right_sum, self.right_sq, self.n_right)
        )


def _impurity(labels: Sequence[float], task_type: TaskType) -> float:
    if task_type == "classification":
        counts: dict[float, int] = {}
        for label in labels:
            counts[label] = counts.get(label, 0) + 1
        return _gini(counts, len(labels))
    return _variance(labels)


def _best_split(
    matrix: Matrix, labels: Vector, indices: list[int], task_type: TaskType
) -> tuple[int, float] | None:
    """Scan every feature's midpoint thresholds; first best wins on ties."""

    node_labels = [labels[i] for i in indices]
    parent = _impurity(node_labels, task_type)
    if parent <= 0:
        return None
    n = len(indices)
    best: tuple[int, float] | None = None
    best_gain = MIN_GAIN
    sweep_type = _ClassificationSweep if task_type == "classification" else _RegressionSweep

    for feature in range(len(matrix[indices[0]])):
        ordered = sorted(indices, key=lambda i: matrix[i][feature])
        values = [matrix[i][feature] for i in ordered]
        uniques = sorted(set(values))
        sweep = sweep_type([labels[i] for i in ordered])
        pointer = 0
        for low, high in zip(uniques, uniques[1:]):
            threshold = (low + high) / 2
            while pointer < n and values[pointer] <= threshold:
                sweep.move_left(labels[ordered[pointer]])
                pointer += 1
            if pointer == 0 or pointer == n:
                continue
            gain = parent - sweep.child_impurity()
            if gain > best_gain:
                best_gain = gain
                best = (feature, threshold)
    return best


def _leaf(labels: Sequence[float], task_type: TaskType) -> Leaf:
    if task_type == "classification":
        return Leaf(value=majority(labels))
    return Leaf(value=sum(labels) / len(labels))


def _build(
    matrix: Matrix,
    labels: Vector,
    indices: list[int],
    depth: int,
    *,
    max_depth: int,
    min_samples: int,
    task_type: TaskType,
) -> Node:
    node_labels = [labels[i] for i in indices]
    if len(indices) < min_samples or depth >= max_depth:
        return _leaf(node_labels, task_type)
    split = _best_split(matrix, labels, indices, task_type)
    if split is None:
        return _leaf(node_labels, task_type)
    feature, threshold = split
    left = [i for i in indices if matrix[i][feature] <= threshold]
    right = [i for i in indices if matrix[i][feature] > threshold]
    options = {"max_depth": max_depth, "min_samples": min_samples, "task_type": task_type}
    return SplitNode(
        feature_index=feature,
        threshold=threshold,
        left=_build(matrix, labels, left, depth + 1, **options),
        right=_build(matrix, labels, right, depth + 1, **options),
    )


def _grow(
    matrix: Matrix,
    labels: Vector,
    indices: list[int],
    *,
    max_depth: int,
    min_samples: int,
    task_type: TaskType,
) -> DecisionTreeModel:
    root = _build(
        matrix,
        labels,
        indices,
        0,
        max_depth=max_depth,
        min_samples=min_samples,
        task_type=task_type,
    )
    return DecisionTreeModel(
        root=root,
        max_depth=max_depth,
        min_samples=min_samples,
        task_type=task_type,
        n_features=len(matrix[0]),
    )


def fit_decision_tree(
    X: Sequence[Sequence[float]],
    y: Sequence[float],
    *,
    task_type: TaskType = "classification",
    max_depth: int = 5,
    min_samples: int = 2,
) -> DecisionTreeModel:
    matrix, labels = validate_training_data(X, y)
    if task_type == "classification":
        check_classification_target(labels)
    started = time.perf_counter()
    tree = _grow(
        matrix,
        labels,
        list(range(len(matrix))),
        max_depth=max_depth,
        min_samples=min_samples,
        task_type=task_type,
    )
    logger.debug(
        "decision tree (%s) depth %d fitted in %.1f ms",
        task_type,
        tree.depth,
        (time.perf_counter() - started) * 1000,
    )
    return tree


def predict_row(node: Node, row: Sequence[float]) -> float:
    while isinstance(node, SplitNode):
        node = node.left if row[node.feature_index] <= node.threshold else node.right
    return node.value


def predict_decision_tree(model: DecisionTreeModel, X: Sequence[Sequence[float]]) -> list[float]:
    return [predict_row(model.root, row) for row in validate_features(X)]


def fit_random_forest(
    X: Sequence[Sequence[float]],
    y: Sequence[float],
    *,
    task_type: TaskType = "classification",
    n_trees: int = 10,
    max_depth: int = 5,
    min_samples: int = 2,
    bootstrap: bool = True,
    seed: int = 42,
    n_jobs: int = 1,
) -> RandomForestModel:
    """Fit ``n_trees`` trees on bootstrap resamples of the training rows.

    All resamples are drawn from the seeded generator before any tree is
    grown, so the forest does not depend on ``n_jobs``.
    """

    matrix, labels = validate_training_data(X, y)
    if task_type == "classification":
        check_classification_target(labels)
    n = len(matrix)
    generator = LinearCongruentialGenerator(seed)
    samples: list[list[int]] = []
    for _ in range(n_trees):
        if bootstrap:
            samples.append([generator.next_index(n) for _ in range(n)])
        else:
            samples.append(list(range(n)))

    started = time.perf_counter()
    tasks = [
        partial(
            _grow,
            matrix,
            labels,
            indices,
            max_depth=max_depth,
            min_samples=min_samples,
            task_type=task_type,
        )
        for indices in samples
    ]
    trees = run_concurrently(tasks, max_workers=n_jobs)
    logger.info(
        "random forest (%s) of %d trees fitted in %.1f ms",
        task_type,
        n_trees,
        (time.perf_counter() - started) * 1000,
    )
    return RandomForestModel(
        trees=tuple(trees),
        n_trees=n_trees,
        max_depth=max_depth,
        min_samples=min_samples,
        task_type=task_type,
        n_features=len(matrix[0]),
        bootstrap=bootstrap,
        seed=int(seed),
    )


def predict_random_forest(model: RandomForestModel, X: Sequence[Sequence[float]]) -> list[float]:
    rows = validate_features(X)
    votes = [[predict_row(tree.root, row) for tree in model.trees] for row in rows]
    if model.task_type == "classification":
        return [majority(row_votes) for row_votes in votes]
    return [sum(row_votes) / len(row_votes) for row_votes in votes]


__all__ = [
    "DecisionTreeModel",
    "Leaf",
    "Node",
    "RandomForestModel",
    "SplitNode",
    "TaskType",
    "fit_decision_tree",
    "fit_random_forest",
    "majority",
    "node_depth",
    "predict_decision_tree",
    "predict_random_forest",
    "predict_row",
]
