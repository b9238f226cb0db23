from models.exam import AnswerExamRequest, ExamQuestion
from utils.grading import evaluate_answer, token_diff

QUESTION = ExamQuestion(
    question_id=1,
    seq=1,
    card_id=10,
    question_type="MCQ",
    front="hola",
    back="hello there",
    choices=["bye", "hello there", "thanks"],
)


def test_choice_is_resolved_against_snapshot_choices():
    result = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, choice=2), 80)
    assert result.is_correct is True
    assert result.score_awarded == 1
    assert result.detail["response"] == "hello there"

    wrong = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, choice=1), 80)
    assert wrong.is_correct is False
    assert wrong.score_awarded == 0
    assert wrong.selected_choice == 1


def test_typed_answer_ignores_case_and_spacing():
    result = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, typed_text="Hello   THERE"), 80)
    assert result.is_correct is True
    assert result.detail["similarity"] == 1.0

    near = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, typed_text="hello their"), 80)
    assert near.is_correct is False
    assert 0.5 < near.detail["similarity"] < 1.0


def test_spoken_answer_uses_pass_score():
    result = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, spoken_text="hello"), 50)
    assert result.pronunciation_score == 50
    assert result.is_correct is True

    strict = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, spoken_text="hello"), 80)
    assert strict.is_correct is False
    assert strict.detail["mismatches"][0]["type"] == "del"


def test_token_diff_marks_missing_and_extra_tokens():
    diff = token_diff("the big cat", "the cat sat")
    assert [t["status"] for t in diff["expected"]] == ["match", "missing", "match"]
    assert [t["status"] for t in diff["actual"]] == ["match", "match", "extra"]


def test_choice_outside_snapshot_is_recorded_as_wrong():
    result = evaluate_answer(QUESTION, AnswerExamRequest(seq=1, choice=7), 80)
    assert result.is_correct is False
    assert result.score_awarded == 0
    assert result.selected_choice == 7
    assert result.detail["response"] is None

    no_choices = QUESTION.model_copy(update={"choices": []})
    assert evaluate_answer(no_choices, AnswerExamRequest(seq=1, choice=1), 80).is_correct is False
