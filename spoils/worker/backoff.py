"""Политика backoff для повторов задач."""


def get_backoff_seconds(retry_count: int, base_seconds: int = 60) -> int:
    """
    Экспоненциальный backoff для retry.
    base=60: retry 1 → 60с, retry 2 → 120с, retry 3 → 240с.
    """
    return base_seconds * (2 ** max(0, retry_count - 1))
