import pytest

from app.services.aggregation import (
    SessionSatisfaction, build_report, coerce_choice_labels, coerce_numeric,
    mean_or_none, question_analysis, round_one
)
from app.services.survey_reader import (
    AnswerRecord, QuestionRef, ResponseRecord, SurveyContext, SurveyInfo, load_survey_context
)


def make_context(answers, responses=None, session_instructors=None):
    context = SurveyContext(survey=SurveyInfo(id="S"))
    context.answers = answers
    context.responses = responses or [ResponseRecord(id=a.response_id) for a in answers]
    context.session_instructor_ids = session_instructors or {}
    return context


class TestCoercion:
    @pytest.mark.parametrize("value, text, expected", [
        (8, None, 8.0),
        ("7.5", None, 7.5),
        ({"value": 9}, None, 9.0),
        ({"score": "4"}, None, 4.0),
        (None, "6", 6.0),
        ("abc", "5", 5.0),
    ])
    def test_numeric_precedence(self, value, text, expected):
        assert coerce_numeric(value, text) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "n/a", True, float("nan"), float("inf"), {"label": "좋음"}])
    def test_numeric_rejects(self, value):
        assert coerce_numeric(value) is None

    def test_choice_text_wins(self):
        assert coerce_choice_labels(["A", "B"], " 기타 ") == ["기타"]

    def test_choice_list_and_objects(self):
        labels = coerce_choice_labels(["A", {"label": "B"}, {"value": 3}, "", None])
        assert labels == ["A", "B", "3"]

    def test_choice_scalar(self):
        assert coerce_choice_labels(2.0) == ["2"]


class TestRounding:
    def test_mean_rounds_to_one_decimal(self):
        assert mean_or_none([8, 9, 10, 7, 8, 9]) == 8.5
        assert mean_or_none([1, 2, 2]) == 1.7

    def test_half_rounds_up(self):
        assert round_one(8.25) == 8.3

    def test_empty_is_none_not_zero(self):
        assert mean_or_none([]) is None


class TestSessionFold:
    def test_fold_partition_independent(self):
        whole = SessionSatisfaction("s", "i")
        whole.fold([6, 7, 6, 5, 9])

        split = SessionSatisfaction("s", "i")
        split.fold([6, 7])
        split.fold([6])
        split.fold([5, 9])

        assert split.count == whole.count == 5
        assert split.average == pytest.approx(whole.average)

    def test_low_threshold_inclusive(self):
        s = SessionSatisfaction("s", "i")
        s.fold([6, 6])
        assert s.is_low
        s.fold([9])
        assert not s.is_low


class TestQuestionRows:
    def test_rating_without_numbers_has_no_average(self):
        q = QuestionRef(id="q", text="점수", type="rating", satisfaction_type="course")
        context = make_context([AnswerRecord("r1", q, answer_value="모름")])
        report = build_report(context)

        row = report.questions[0]
        assert row.average is None
        assert row.count is None
        assert report.satisfaction["course"] is None
        assert report.satisfaction["overall"] is None

    def test_choice_distribution(self):
        q = QuestionRef(id="q", text="선호", type="multiple_choice")
        context = make_context([
            AnswerRecord("r1", q, answer_value=["A", "B"]),
            AnswerRecord("r2", q, answer_value=["A"]),
        ])
        row = build_report(context).questions[0]
        assert row.distribution == {"A": 2, "B": 1}

    def test_text_answers_trimmed_and_blank_dropped(self):
        q = QuestionRef(id="q", text="의견", type="textarea")
        context = make_context([
            AnswerRecord("r1", q, answer_text="  좋았습니다 "),
            AnswerRecord("r2", q, answer_text="   "),
        ])
        assert build_report(context).questions[0].answers == ["좋았습니다"]

    def test_first_seen_order(self):
        q1 = QuestionRef(id="q1", text="1", type="text")
        q2 = QuestionRef(id="q2", text="2", type="text")
        context = make_context([
            AnswerRecord("r1", q2, answer_text="b"),
            AnswerRecord("r1", q1, answer_text="a"),
        ])
        assert [r.question_id for r in build_report(context).questions] == ["q2", "q1"]


class TestScopedReports:
    def test_full_scope(self, db, seeded):
        report = build_report(load_survey_context(db, "S1"))

        assert report.response_count == 10
        assert report.satisfaction["instructor"] == 7.5
        assert report.satisfaction["overall"] == 7.5
        assert report.satisfaction["course"] is None
        assert set(report.sessions) == {"sess-a", "sess-b"}

    def test_instructor_scope(self, db, seeded):
        context = load_survey_context(db, "S1")

        kim = build_report(context, "inst-kim")
        assert kim.response_count == 6
        assert [q.question_id for q in kim.questions] == ["q-a"]
        assert kim.questions[0].average == 8.5
        assert kim.questions[0].count == 6

        lee = build_report(context, "inst-lee")
        assert lee.response_count == 4
        assert lee.sessions["sess-b"].average == pytest.approx(6.0)
        assert lee.sessions["sess-b"].is_low

    def test_scoped_counts_sum_to_total(self, db, seeded):
        context = load_survey_context(db, "S1")
        total = build_report(context).response_count
        per_instructor = sum(build_report(context, i.id).response_count for i in context.instructors)
        assert per_instructor == total

    def test_question_analysis_ignores_scope(self, db, seeded):
        analysis = question_analysis(load_survey_context(db, "S1"))
        assert analysis["q-a"]["stats"] == {"average": 8.5, "count": 6}
        assert analysis["q-b"]["stats"] == {"average": 6.0, "count": 4}
