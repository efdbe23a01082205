"""
Best weekday/hour to send, derived from past recipient engagement.
"""

from __future__ import annotations

import math
from typing import Any

# Indexed by Postgres `dow` (0 = Sunday).
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

MIN_BUCKET_SENDS = 5
BEST_CONFIDENCE_CAP = 95
NEXT_CONFIDENCE_CAP = 90
LOOKBACK_DAYS = 90


def default_send_time() -> dict[str, Any]:
    return {
        "best_day": "Tuesday",
        "best_time": "10:00",
        "confidence": 75,
        "next_best_times": [
            {"day": "Thursday", "time": "10:00", "confidence": 70},
            {"day": "Wednesday", "time": "14:00", "confidence": 65},
        ],
        "metadata": {
            "campaigns_analyzed": 0,
            "total_emails": 0,
            "open_rate": 0.0,
            "click_rate": 0.0,
            "fallback": True,
        },
    }


def engagement_score(*, sent: int, opened: int, clicked: int) -> float:
    if sent <= 0:
        return 0.0
    return (opened / sent) * 0.7 + (clicked / sent) * 0.3


def _confidence(score: float, cap: int) -> int:
    return min(cap, math.floor(score * 100 * 0.8))


def best_send_time(buckets: list[dict[str, Any]], *, campaigns_analyzed: int) -> dict[str, Any]:
    """
    Pick the best (weekday, hour) bucket; buckets with too few sends never win.

    Returns the default recommendation when no bucket qualifies.
    """
    scored = []
    for bucket in buckets:
        sent = int(bucket["sent"])
        score = engagement_score(sent=sent, opened=int(bucket["opened"]), clicked=int(bucket["clicked"]))
        scored.append((score, sent, int(bucket["weekday"]), int(bucket["hour"])))

    eligible = [entry for entry in scored if entry[1] >= MIN_BUCKET_SENDS]
    if not eligible:
        return default_send_time()

    # Ties go to the earliest weekday/hour so results are stable.
    best = max(eligible, key=lambda entry: (entry[0], -entry[2], -entry[3]))
    best_score, _, best_day, best_hour = best

    others = sorted(
        (entry for entry in scored if (entry[2], entry[3]) != (best_day, best_hour)),
        key=lambda entry: (-entry[0], entry[2], entry[3]),
    )[:3]

    total_emails = sum(int(b["sent"]) for b in buckets)
    total_opens = sum(int(b["opened"]) for b in buckets)
    total_clicks = sum(int(b["clicked"]) for b in buckets)
    return {
        "best_day": DAY_NAMES[best_day],
        "best_time": f"{best_hour}:00",
        "confidence": _confidence(best_score, BEST_CONFIDENCE_CAP),
        "next_best_times": [
            {
                "day": DAY_NAMES[day],
                "time": f"{hour}:00",
                "score": round(score, 4),
                "confidence": _confidence(score, NEXT_CONFIDENCE_CAP),
            }
            for score, _, day, hour in others
        ],
        "metadata": {
            "campaigns_analyzed": campaigns_analyzed,
            "total_emails": total_emails,
            "open_rate": round(total_opens / total_emails, 4) if total_emails else 0.0,
            "click_rate": round(total_clicks / total_emails, 4) if total_emails else 0.0,
            "fallback": False,
        },
    }
