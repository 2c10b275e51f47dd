# 五个流水线阶段：解析简历 → 提取关键词 → 检索职位 → 合并排序 → 保存结果

from .parse_cv import parse_cv
from .tune_search import allowed_vocabulary, tune_search
from .search_jobs import build_search_terms, search_jobs
from .combine_rank import combine_and_rank, recommendation_for
from .save_results import save_results

__all__ = [
    "parse_cv",
    "tune_search",
    "allowed_vocabulary",
    "search_jobs",
    "build_search_terms",
    "combine_and_rank",
    "recommendation_for",
    "save_results",
]
