from app.models.comparison import ComparisonModel  # noqa: F401
