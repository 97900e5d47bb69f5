"""ML pipeline plugin."""

manifest = {
    "title": "ML Pipeline Builder",
    "summary": (
        "Profile a CSV, preprocess columns, split with a reproducible seed, "
        "train linear, logistic, tree or forest models and compare predictions."
    ),
    "blueprint": "ml_pipeline",
    "category": "Machine Learning",
}


__all__ = ["manifest"]
