from solrbridge.planner.metric_translator import translate_aggregate
from solrbridge.planner.predicate_translator import NotTranslatable, TranslatedFilter, translate_predicate
from solrbridge.planner.pushdown import PushdownPlan, PushdownPlanner
from solrbridge.planner.residual import ResidualEvaluator

__all__ = [
    "translate_aggregate",
    "NotTranslatable",
    "TranslatedFilter",
    "translate_predicate",
    "PushdownPlan",
    "PushdownPlanner",
    "ResidualEvaluator",
]
