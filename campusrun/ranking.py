"""Runner ranking: distance, rating and category affinity folded into one score.

The affinity term is a TF-IDF cosine similarity over a two-document corpus:
the task's requested categories and the runner's completed-task history.
With only two documents a term shared by both would get ``log(2/2) = 0``,
so shared terms are given a small constant IDF instead.
"""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from campusrun.config import settings
from campusrun.geo import distance_meters
from campusrun.utils import parse_coordinate

DISTANCE_WEIGHT = 0.40
RATING_WEIGHT = 0.35
AFFINITY_WEIGHT = 0.25
MAX_RATING = 5.0
SHARED_TERM_IDF = 0.1

# Given a runner id, return the category labels of each task they completed,
# one list per task (empty list for a task without categories).
HistoryFetcher = Callable[[str], Awaitable[list[list[str]]]]


# ---------------------------------------------------------------------------
# TF-IDF affinity
# ---------------------------------------------------------------------------


def _normalize(labels: Iterable[str | None]) -> list[str]:
    out = []
    for label in labels:
        if not label:
            continue
        token = label.strip().lower()
        if token:
            out.append(token)
    return out


def term_frequency(term: str, document: list[str]) -> float:
    if not document:
        return 0.0
    return document.count(term) / len(document)


def task_count_frequency(term: str, task_categories: list[list[str]], total_tasks: int) -> float:
    """Share of a runner's completed tasks that carried ``term``."""
    if total_tasks <= 0:
        return 0.0
    with_term = sum(1 for cats in task_categories if term in cats)
    return with_term / total_tasks


def inverse_document_frequency(term: str, corpus: list[list[str]]) -> float:
    containing = sum(1 for doc in corpus if term in doc)
    if containing == 0:
        return 0.0
    if containing == len(corpus):
        return SHARED_TERM_IDF
    return math.log(len(corpus) / containing)


def tfidf_vector(document: list[str], corpus: list[list[str]]) -> dict[str, float]:
    return {
        term: term_frequency(term, document) * inverse_document_frequency(term, corpus)
        for term in dict.fromkeys(document)
    }


def tfidf_vector_by_task_count(
    task_categories: list[list[str]], total_tasks: int, corpus: list[list[str]]
) -> dict[str, float]:
    terms = dict.fromkeys(term for cats in task_categories for term in cats)
    return {
        term: task_count_frequency(term, task_categories, total_tasks)
        * inverse_document_frequency(term, corpus)
        for term in terms
    }


def cosine_similarity(v1: dict[str, float], v2: dict[str, float]) -> float:
    dot = mag1 = mag2 = 0.0
    for term in v1.keys() | v2.keys():
        a = v1.get(term, 0.0)
        b = v2.get(term, 0.0)
        dot += a * b
        mag1 += a * a
        mag2 += b * b
    denominator = math.sqrt(mag1) * math.sqrt(mag2)
    if denominator == 0:
        return 0.0
    return dot / denominator


def affinity_score(
    task_categories: Iterable[str], history: list[list[str]], count_weighted: bool = True
) -> float:
    """TF-IDF cosine similarity between a task and a runner's completed work.

    ``history`` holds one category list per completed task. By default the
    runner vector is weighted by the share of tasks that carried each
    category; with ``count_weighted=False`` it falls back to raw token
    frequency over the flattened history. Returns 0 when either side has
    nothing to compare.
    """
    query_doc = _normalize(task_categories)
    per_task = [_normalize(cats) for cats in history]
    runner_doc = [term for cats in per_task for term in cats]
    if not query_doc or not runner_doc:
        return 0.0

    corpus = [query_doc, runner_doc]
    query_vector = tfidf_vector(query_doc, corpus)
    if count_weighted:
        runner_vector = tfidf_vector_by_task_count(per_task, len(history), corpus)
    else:
        runner_vector = tfidf_vector(runner_doc, corpus)

    similarity = cosine_similarity(query_vector, runner_vector)
    if math.isnan(similarity):
        return 0.0
    return min(1.0, max(0.0, similarity))


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedRunner:
    id: str
    distance: float  # metres
    distance_score: float
    rating_score: float
    affinity_score: float
    final_score: float


def distance_score(meters: float, max_distance: float | None = None) -> float:
    """Linear falloff from 1 at the requester to 0 at the hard cutoff."""
    cutoff = max_distance if max_distance is not None else settings.max_distance_meters
    if math.isnan(meters):
        return 0.0
    return min(1.0, max(0.0, 1 - meters / cutoff))


def rating_score(average_rating: float | None) -> float:
    if not average_rating or math.isnan(average_rating):
        return 0.0
    return min(1.0, max(0.0, average_rating / MAX_RATING))


def final_score(dist: float, rating: float, affinity: float) -> float:
    return DISTANCE_WEIGHT * dist + RATING_WEIGHT * rating + AFFINITY_WEIGHT * affinity


def score_runner(
    runner_id: str,
    meters: float,
    average_rating: float | None,
    affinity: float,
    max_distance: float | None = None,
) -> RankedRunner:
    d = distance_score(meters, max_distance)
    r = rating_score(average_rating)
    return RankedRunner(
        id=runner_id,
        distance=meters,
        distance_score=d,
        rating_score=r,
        affinity_score=affinity,
        final_score=final_score(d, r, affinity),
    )


async def rank_runners(
    runners: Iterable,
    task_categories: Iterable[str],
    origin: tuple[float, float],
    fetch_history: HistoryFetcher,
    max_distance: float | None = None,
) -> list[RankedRunner]:
    """Score every runner with usable coordinates and return them best first.

    Ties on score go to the nearer runner, then to the smaller id, so the
    same inputs always give the same queue.
    """
    categories = _normalize(task_categories)
    ranked: list[RankedRunner] = []

    for runner in runners:
        lat = parse_coordinate(runner.latitude)
        lon = parse_coordinate(runner.longitude)
        if lat is None or lon is None:
            continue
        meters = distance_meters(origin, (lat, lon))
        if math.isnan(meters):
            continue

        affinity = 0.0
        if categories:
            history = await fetch_history(runner.id)
            if history:
                affinity = affinity_score(categories, history)

        ranked.append(score_runner(runner.id, meters, runner.average_rating, affinity, max_distance))

    ranked.sort(key=lambda r: (-r.final_score, r.distance, r.id))
    return ranked
