# 保存的求职结果与已推荐职位集合

from .repository import ResultsRepository, SavedResults

__all__ = ["ResultsRepository", "SavedResults"]
