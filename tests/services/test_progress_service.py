"""
Tests for ProgressService -- practice attempts and level unlocking.

Tests cover:
- Unlocking the next level after enough correct answers
- Review problems below the learner's level are recorded but not counted
- Template level looked up from the template key
- Level statistics and attempt history
- Read-only queries and invalid attempts
- Progress surviving a simulation reset
"""

import pytest

from assertive_kernel.services.progress_service import ProgressService

LEARNER = "learner-1"


@pytest.fixture
def progress_service(memory_store, catalog, clock):
    return ProgressService(memory_store, catalog, clock=clock)


def answer(service, n, level=0, correct=True, **kwargs):
    kwargs.setdefault("template_level", level)
    return service.record_attempt(
        LEARNER,
        problem_id=f"problem-{n}",
        problem_type="forward",
        level=level,
        correct=correct,
        feedback_status="correct" if correct else "incorrect",
        **kwargs,
    )


class TestRecordAttempt:
    def test_first_attempt_creates_learner(self, progress_service, memory_store):
        result = answer(progress_service, 1)

        assert result["success"] is True
        assert result["counted"] is True
        assert result["unlocked_level"] is None
        assert result["level_stats"] == {
            0: {"correct_count": 1, "total_attempts": 1, "unlocked_next": False},
        }
        assert memory_store.load(LEARNER).version == 1

    def test_five_correct_answers_unlock_next_level(self, progress_service, catalog):
        assert catalog.settings.correct_to_unlock == 5
        for n in range(4):
            assert answer(progress_service, n)["unlocked_level"] is None
        answer(progress_service, 10, correct=False)

        result = answer(progress_service, 4)

        assert result["unlocked_level"] == 1
        assert result["current_level"] == 1
        assert result["unlocked_levels"] == [0, 1]
        assert result["level_stats"][0] == {
            "correct_count": 5,
            "total_attempts": 6,
            "unlocked_next": True,
        }

    def test_review_problems_do_not_unlock(self, progress_service):
        for n in range(6):
            result = answer(progress_service, n, level=1, template_level=0)
            assert result["counted"] is False

        progress = progress_service.get_progress(LEARNER)
        assert progress["unlocked_levels"] == [0]
        assert progress["level_stats"] == {}
        history = progress_service.get_attempt_history(LEARNER)
        assert len(history["attempts"]) == 6

    def test_template_level_from_template_key(self, progress_service):
        result = progress_service.record_attempt(
            LEARNER,
            problem_id="p-1",
            problem_type="reverse",
            level=1,
            correct=True,
            feedback_status="correct",
            template_key="cash-sale",
        )

        assert result["counted"] is False
        attempt = progress_service.get_attempt_history(LEARNER)["attempts"][0]
        assert attempt["template_level"] == 0
        assert attempt["template_key"] == "cash-sale"

    def test_attempt_without_template_level_counts(self, progress_service):
        result = answer(progress_service, 1, level=2, template_level=None)

        assert result["counted"] is True
        assert result["level_stats"][2]["total_attempts"] == 1

    def test_construct_attempt_keeps_journal_entry(self, progress_service):
        progress_service.record_attempt(
            LEARNER,
            problem_id="p-9",
            problem_type="construct",
            level=0,
            correct=False,
            feedback_status="incorrect",
            je_debit="Cash",
            je_credit="Sales Revenue",
            je_amount="$1,250",
        )

        attempt = progress_service.get_attempt_history(LEARNER)["attempts"][0]
        assert attempt["je_debit"] == "Cash"
        assert str(attempt["je_amount"]) == "1250"

    def test_attempt_is_logged(self, progress_service, captured_logs):
        for n in range(5):
            answer(progress_service, n)

        logs = captured_logs()
        recorded = [r for r in logs if r["message"] == "attempt_recorded"]
        unlocked = [r for r in logs if r["message"] == "level_unlocked"]
        assert len(recorded) == 5
        assert recorded[0]["learner_id"] == LEARNER
        assert [r["unlocked_level"] for r in unlocked] == [1]


class TestInvalidAttempts:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"problem_type": "guess"},
            {"feedback_status": "maybe"},
            {"level": -1},
            {"level": "one"},
            {"je_amount": "lots"},
            {"je_amount": "NaN"},
        ],
    )
    def test_rejected_without_writing(self, progress_service, memory_store, overrides):
        args = {
            "problem_id": "p-1",
            "problem_type": "forward",
            "level": 0,
            "correct": True,
            "feedback_status": "correct",
            **overrides,
        }

        result = progress_service.record_attempt(LEARNER, **args)

        assert result["success"] is False
        assert result["error"] == "INVALID_ATTEMPT"
        assert memory_store.load(LEARNER) is None


class TestQueries:
    def test_new_learner_progress(self, progress_service, memory_store):
        assert progress_service.get_progress(LEARNER) == {
            "success": True,
            "current_level": 0,
            "unlocked_levels": [0],
            "level_stats": {},
        }
        assert memory_store.load(LEARNER) is None

    def test_level_stats(self, progress_service):
        for n in range(3):
            answer(progress_service, n, level=1)

        stats = progress_service.get_level_stats(LEARNER, 1)

        assert stats == {
            "success": True,
            "level": 1,
            "correct_count": 3,
            "total_attempts": 3,
            "unlocked_next": False,
            "progress_toward_unlock": 3,
            "needs_for_unlock": 2,
        }

    def test_history_most_recent_first(self, progress_service, clock):
        for n in range(4):
            answer(progress_service, n, level=n % 2)
            clock.advance(60)

        history = progress_service.get_attempt_history(LEARNER, level=0, limit=5)

        assert [a["problem_id"] for a in history["attempts"]] == ["problem-2", "problem-0"]


class TestSharedRecord:
    def test_progress_survives_simulation_reset(self, progress_service, simulation, memory_store):
        for n in range(5):
            answer(progress_service, n)
        simulation.start_action(LEARNER, "owner-invest", 3)

        simulation.reset_simulation(LEARNER)

        record = memory_store.load(LEARNER)
        assert record.pending is None
        assert record.progress.unlocked_levels == (0, 1)
        assert progress_service.get_level_stats(LEARNER, 0)["unlocked_next"] is True

    def test_attempt_keeps_pending_transaction(self, progress_service, simulation, memory_store):
        simulation.start_action(LEARNER, "owner-invest", 3)

        answer(progress_service, 1)

        assert memory_store.load(LEARNER).pending is not None
