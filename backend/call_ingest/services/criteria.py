from typing import Any, Dict

from ..schemas.pydantic_schemas import CriteriaEvaluation


def score_criteria(results: Dict[str, Any]) -> CriteriaEvaluation:
    """Tally pass/fail evaluation criteria.

    Entries without a recognisable ``result`` of success/failure are left out
    of both counts.
    """
    evaluation = CriteriaEvaluation()
    if not isinstance(results, dict):
        return evaluation
    for name, result in results.items():
        if not isinstance(result, dict):
            continue
        outcome = result.get("result")
        if outcome == "success":
            evaluation.passed_criteria.append(name)
        elif outcome == "failure":
            evaluation.failed_criteria.append(name)
    evaluation.score = len(evaluation.passed_criteria)
    evaluation.total = evaluation.score + len(evaluation.failed_criteria)
    return evaluation
