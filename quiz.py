"""Daily quiz scoring.

A submission is a batch of exactly `daily_quiz_count` answers. Scoring,
answer rows, wrong-answer records and the quiz bonus all commit together, and
(user, calendar day) admits a single session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clock import utcnow
from errors import DuplicateQuizSession, MalformedInput
from extensions import db
from models_points import REASON_QUIZ_BONUS
from models_quiz import ExamAnswer, ExamQuestion, ExamSession, WrongAnswer


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuizResult:
    session_id: int
    correct_count: int
    total_questions: int
    score: int
    bonus_awarded: bool

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "score": self.score,
            "bonus_awarded": self.bonus_awarded,
        }


def percent_score(correct: int, total: int) -> int:
    """round(100 * correct / total), halves rounded up."""
    return (200 * correct + total) // (2 * total)


class QuizScorer:
    def __init__(self, ledger, config, clock: Callable[[], datetime] = utcnow):
        self.ledger = ledger
        self.config = config
        self.clock = clock

    def _session_for(self, user_id: int, day) -> ExamSession | None:
        return db.session.execute(
            select(ExamSession).where(ExamSession.user_id == user_id, ExamSession.session_date == day)
        ).scalar_one_or_none()

    def daily_questions(self, user_id: int, now: datetime | None = None) -> tuple[list[ExamQuestion], bool]:
        """Questions for today and whether the user already completed them."""
        now = now or self.clock()
        session = self._session_for(user_id, now.date())
        if session is not None:
            return [a.question for a in session.answers], True
        questions = db.session.execute(
            select(ExamQuestion)
            .order_by(ExamQuestion.created_at.asc(), ExamQuestion.id.asc())
            .limit(self.config.daily_quiz_count)
        ).scalars().all()
        return list(questions), False

    def _validate(self, answers) -> list[tuple[int, int]]:
        expected = self.config.daily_quiz_count
        if not isinstance(answers, list) or len(answers) != expected:
            raise MalformedInput(f"Expected exactly {expected} answers")
        parsed = []
        for item in answers:
            if not isinstance(item, dict):
                raise MalformedInput("Each answer must be an object")
            qid = item.get("question_id")
            opt = item.get("selected_option")
            if isinstance(qid, bool) or not isinstance(qid, int) or isinstance(opt, bool) or not isinstance(opt, int):
                raise MalformedInput("question_id and selected_option must be integers")
            parsed.append((qid, opt))
        if len({qid for qid, _ in parsed}) != len(parsed):
            raise MalformedInput("Duplicate question_id in answers")
        return parsed

    def submit(self, user_id: int, answers, now: datetime | None = None) -> QuizResult:
        now = now or self.clock()
        parsed = self._validate(answers)

        questions = {
            q.id: q
            for q in db.session.execute(
                select(ExamQuestion).where(ExamQuestion.id.in_([qid for qid, _ in parsed]))
            ).scalars()
        }
        missing = [qid for qid, _ in parsed if qid not in questions]
        if missing:
            raise MalformedInput(f"Unknown question ids: {missing}")

        today = now.date()
        if self._session_for(user_id, today) is not None:
            raise DuplicateQuizSession("Today's quiz was already submitted")

        total = len(parsed)
        session = ExamSession(
            user_id=user_id,
            session_date=today,
            total_questions=total,
            correct_count=0,
            score=0,
            created_at=now,
        )
        db.session.add(session)
        try:
            # The unique (user_id, session_date) constraint catches a racing attempt here.
            db.session.flush()

            correct = 0
            deadline = now + timedelta(days=self.config.correction_window_days)
            for qid, selected in parsed:
                question = questions[qid]
                is_correct = question.correct_option_index == selected
                answer = ExamAnswer(
                    session_id=session.id,
                    question_id=qid,
                    user_id=user_id,
                    selected_option=selected,
                    is_correct=is_correct,
                    created_at=now,
                )
                db.session.add(answer)
                if is_correct:
                    correct += 1
                    continue
                db.session.flush()
                db.session.add(WrongAnswer(
                    user_id=user_id,
                    question_id=qid,
                    answer_id=answer.id,
                    recorded_at=now,
                    correction_deadline=deadline,
                    correction_text=question.explanation_text,
                    correction_video_url=question.explanation_video_url,
                ))

            session.correct_count = correct
            session.score = percent_score(correct, total)

            bonus = correct >= self.config.required_correct_for_bonus
            if bonus:
                self.ledger.apply(
                    user_id, 1, REASON_QUIZ_BONUS,
                    note="Daily quiz bonus",
                    metadata={"correct_count": correct, "session_date": today.isoformat()},
                )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if self._session_for(user_id, today) is not None:
                raise DuplicateQuizSession("Today's quiz was already submitted")
            raise
        except Exception:
            db.session.rollback()
            raise

        logger.info("quiz user_id=%s correct=%s/%s score=%s bonus=%s", user_id, correct, total, session.score, bonus)
        return QuizResult(
            session_id=session.id,
            correct_count=correct,
            total_questions=total,
            score=session.score,
            bonus_awarded=bonus,
        )
