"""Detection package."""


def __getattr__(name: str):
    """Lazy re-export so that ``from saferedact.core.detection import DetectionPipeline``
    works without pulling the classifier stack at import time."""
    if name == "DetectionPipeline":
        from saferedact.core.detection.pipeline import DetectionPipeline  # noqa: F811
        return DetectionPipeline
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
