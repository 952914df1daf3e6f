from dataclasses import dataclass
from typing import List, Optional

from scripturequiz.models import AnswerRecord, Question


@dataclass
class GradeResult:
    answers: List[AnswerRecord]
    score: Optional[float]
    total_correct: int
    total_questions: int


def grade_answers(answers: List[AnswerRecord], questions: List[Question]) -> GradeResult:
    """Mark each final answer and compute a percentage score.

    Autosave entries are dropped. Without questions there is nothing to score
    against and the score is None.
    """
    correct_by_id = {question.id: question.correct_answer for question in questions}
    graded = []
    total_correct = 0

    for answer in answers:
        if answer.is_autosave:
            continue
        expected = correct_by_id.get(answer.question_id)
        is_correct = expected is not None and answer.selected_answer == expected
        if is_correct:
            total_correct += 1
        graded.append(answer.model_copy(update={"is_correct": is_correct}))

    total_questions = len(questions)
    score = round(total_correct / total_questions * 100, 2) if total_questions else None
    return GradeResult(graded, score, total_correct, total_questions)
