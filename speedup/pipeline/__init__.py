from speedup.pipeline import filters
from speedup.pipeline.progress import ProgressTranslator, to_percent

__all__ = ["ProgressTranslator", "filters", "to_percent"]
