import threading

from errors import AnalysisError, GenerationError, InterpretationError, SynthesisError
from models import QuestionCategory
from session_manager import ActionResult, Outcome, SessionRegistry, SessionState


def _answer_all(controller, label="A"):
    results = []
    while controller.state != SessionState.COMPLETE:
        results.append(controller.submit_answer(label))
    return results


def test_start_persists_profile_and_empty_answers(controller, storage, profile):
    assert storage.load_profile() == profile
    assert storage.load_answers() == []
    assert controller.context.current_index == 0
    assert len(controller.context.queue) == 5
    assert controller.state == SessionState.AWAITING_ANSWER


def test_answer_advances_and_persists(controller, storage):
    first = controller.context.current_question

    result = controller.submit_answer("b")

    assert result.ok
    assert controller.context.current_index == 1
    assert [a.question_id for a in storage.load_answers()] == [first.id]
    assert storage.load_answers()[0].selected_option == "B"
    assert result.data["answer"]["selectedOption"] == "B"


def test_answer_rejects_missing_option(controller):
    result = controller.submit_answer("E")

    assert result.outcome == Outcome.FAILED
    assert result.error_type == "ValidationError"
    assert result.http_status == 400
    assert controller.context.answers == []


def test_index_tracks_answer_count(controller):
    for expected in range(1, 5):
        controller.submit_answer("C")
        assert controller.context.current_index == len(controller.context.answers) == expected


def test_full_run_triggers_analysis_once(controller, fake_ai, storage, events):
    results = _answer_all(controller)

    assert len(results) == 5
    assert controller.state == SessionState.COMPLETE
    assert len(fake_ai.analyze_calls) == 1
    _, answers, questions = fake_ai.analyze_calls[0]
    assert [a.question_id for a in answers] == [q.id for q in questions]
    assert results[-1].data["report"]["psychologicalArchetype"] == "The Sage"
    assert storage.load_report() == fake_ai.report
    assert events[-1][0] == "report_ready"
    assert events[-1][1]["report"]["summary"] == "Measured and curious."


def test_finish_is_idempotent(controller, fake_ai):
    _answer_all(controller)

    result = controller.finish()

    assert result.ok
    assert len(fake_ai.analyze_calls) == 1


def test_finish_before_completion_is_refused(controller, fake_ai):
    controller.submit_answer("A")

    result = controller.finish()

    assert result.outcome == Outcome.FAILED
    assert result.error_type == "SessionStateError"
    assert result.http_status == 409
    assert fake_ai.analyze_calls == []


def test_analysis_failure_keeps_answers_and_allows_retry(controller, fake_ai, storage):
    fake_ai.analyze_error = AnalysisError("Failed to generate analysis.")

    results = _answer_all(controller)

    last = results[-1]
    assert last.ok
    assert last.data["analysis"]["outcome"] == "failed"
    assert last.data["analysis"]["error"] == "AnalysisError"
    assert storage.load_report() is None
    assert len(storage.load_answers()) == 5

    fake_ai.analyze_error = None
    retry = controller.finish()

    assert retry.ok
    assert storage.load_report() == fake_ai.report
    assert len(fake_ai.analyze_calls) == 2


def test_answer_after_completion_is_refused(controller):
    _answer_all(controller)

    result = controller.submit_answer("A")

    assert result.error_type == "SessionStateError"
    assert len(controller.context.answers) == 5


def test_skip_moves_current_question_last(controller):
    ctx = controller.context
    controller.submit_answer("A")
    current = ctx.current_question.id

    result = controller.skip()

    assert result.ok
    assert ctx.pool.queue_ids[-1] == current
    assert ctx.current_index == 1
    assert ctx.current_question.id != current


def test_skip_on_last_question_keeps_it_current(controller):
    ctx = controller.context
    for _ in range(4):
        controller.submit_answer("A")
    last = ctx.current_question.id

    controller.skip()

    assert ctx.current_question.id == last
    assert ctx.current_index == 4


def test_replace_generates_in_same_category(controller, fake_ai):
    ctx = controller.context
    category = ctx.current_question.category

    result = controller.replace()

    assert result.ok
    assert fake_ai.generate_calls == [(category, 1)]
    assert ctx.current_question.category == category
    assert ctx.current_question.id.startswith("gen-")
    assert len(ctx.queue) == 5


def test_replace_failure_reports_and_keeps_queue(controller, fake_ai):
    ctx = controller.context
    before = ctx.pool.queue_ids
    fake_ai.generate_error = GenerationError("Failed to generate a new question.")

    result = controller.replace()

    assert result.outcome == Outcome.FAILED
    assert result.error_type == "GenerationError"
    assert result.http_status == 502
    assert ctx.pool.queue_ids == before
    assert ctx.busy["replace"] is False


def test_insert_question_after_current(controller):
    ctx = controller.context
    controller.submit_answer("A")

    result = controller.insert_question("DailyRoutine")

    assert result.ok
    assert len(ctx.queue) == 6
    assert ctx.queue[2].category == QuestionCategory.DAILY_ROUTINE
    assert ctx.current_index == 1


def test_insert_question_unknown_category(controller, fake_ai):
    result = controller.insert_question("Astrology")

    assert result.error_type == "ValidationError"
    assert fake_ai.generate_calls == []


def test_busy_action_is_rejected(controller, fake_ai):
    controller.context.busy["replace"] = True

    result = controller.replace()

    assert result.outcome == Outcome.BUSY
    assert result.http_status == 409
    assert fake_ai.generate_calls == []


def test_stale_generation_is_discarded(controller, fake_ai):
    ctx = controller.context
    fake_ai.during_call = lambda: controller.submit_answer("A")

    result = controller.replace()

    assert result.outcome == Outcome.STALE
    assert len(ctx.pool.pool) == 5
    assert len(ctx.answers) == 1


def test_speech_reads_question_and_options(controller, fake_ai):
    question = controller.context.current_question

    result = controller.request_speech("Kore")

    assert result.ok
    assert result.data["audio_url"].startswith("data:audio/wav;base64,")
    assert result.data["question_id"] == question.id
    text, voice = fake_ai.speech_calls[0]
    assert voice == "Kore"
    assert text.startswith(question.text)
    assert f"Option D: {question.options['D']}" in text


def test_speech_unknown_voice(controller, fake_ai):
    result = controller.request_speech("Nobody")

    assert result.error_type == "ValidationError"
    assert fake_ai.speech_calls == []


def test_speech_failure(controller, fake_ai):
    fake_ai.speech_error = SynthesisError("Failed to generate speech.")

    result = controller.request_speech("Puck")

    assert result.outcome == Outcome.FAILED
    assert result.error_type == "SynthesisError"


def test_speech_stale_after_skip(controller, fake_ai):
    fake_ai.during_call = controller.skip

    result = controller.request_speech("Puck")

    assert result.outcome == Outcome.STALE
    assert "audio_url" not in result.data


def test_voice_answer_recorded(controller, fake_ai, storage):
    question = controller.context.current_question
    fake_ai.selection = "C"

    result = controller.submit_voice_recording(b"webm-bytes", "audio/webm")

    assert result.ok
    assert result.data["selection"] == "C"
    assert fake_ai.interpret_calls == [(b"webm-bytes", "audio/webm", question.id)]
    assert storage.load_answers()[0].selected_option == "C"


def test_voice_unrecognized_asks_for_retry(controller, fake_ai):
    fake_ai.selection = None

    result = controller.submit_voice_recording(b"webm-bytes")

    assert result.outcome == Outcome.RETRY
    assert result.http_status == 422
    assert controller.context.answers == []


def test_voice_option_missing_on_question_asks_for_retry(controller, fake_ai):
    fake_ai.selection = "E"

    result = controller.submit_voice_recording(b"webm-bytes")

    assert result.outcome == Outcome.RETRY
    assert controller.context.answers == []


def test_voice_service_failure_asks_for_retry(controller, fake_ai):
    fake_ai.interpret_error = InterpretationError("transcription failed")

    result = controller.submit_voice_recording(b"webm-bytes")

    assert result.outcome == Outcome.RETRY
    assert result.error_type == "InterpretationError"
    assert controller.context.answers == []


def test_voice_device_denied(controller, fake_ai):
    result = controller.submit_voice_recording(None, device_error="NotAllowedError")

    assert result.outcome == Outcome.DEVICE_DENIED
    assert result.http_status == 403
    assert fake_ai.interpret_calls == []


def test_voice_stale_after_skip(controller, fake_ai):
    fake_ai.during_call = controller.skip

    result = controller.submit_voice_recording(b"webm-bytes")

    assert result.outcome == Outcome.STALE
    assert controller.context.answers == []


def test_action_result_to_dict():
    payload = ActionResult(Outcome.RETRY, "again", "InterpretationError", 502, {"x": 1}).to_dict()

    assert payload == {
        "status": "error",
        "outcome": "retry",
        "message": "again",
        "error": "InterpretationError",
        "x": 1,
    }


def test_registry(controller):
    registry = SessionRegistry()
    session_id = registry.new_session_id("Ana María")

    assert session_id.startswith("anamaría_")
    registry.add(controller)
    assert registry.get("ana_test") is controller
    assert len(registry) == 1
    assert registry.remove("ana_test") is controller
    assert registry.get("ana_test") is None


def test_same_action_from_two_threads(controller, fake_ai):
    started = threading.Event()
    release = threading.Event()

    def hold():
        started.set()
        release.wait(5)

    fake_ai.during_call = hold
    results = []
    worker = threading.Thread(target=lambda: results.append(controller.request_speech("Puck")))
    worker.start()
    assert started.wait(5)

    second = controller.request_speech("Puck")
    release.set()
    worker.join(5)

    assert second.outcome == Outcome.BUSY
    assert results[0].ok
    assert len(fake_ai.speech_calls) == 1
    assert controller.context.busy["speech"] is False
