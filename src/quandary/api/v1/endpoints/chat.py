"""Chat history of question rooms.

Messages are posted over the realtime channel; this router only reads them back.
"""

from fastapi import APIRouter, Query

from quandary.core.errors import NotFoundError
from quandary.models import Question
from quandary.repositories import ChatRepository
from quandary.repositories.chat_repo import ChatMessageRow
from quandary.schemas import ChatAuthor, ChatMessageResponse

from ..dependencies import CurrentUserDep, SessionDep

router = APIRouter(prefix="/chat", tags=["chat"])


def _serialize(row: ChatMessageRow) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=row.id,
        question_id=row.question_id,
        parent_id=row.parent_id,
        message=row.message,
        created_at=row.created_at,
        user=ChatAuthor(
            user_id=row.user_id,
            username=row.username,
            avatar=row.avatar,
            level=row.level,
        ),
        replies=[_serialize(reply) for reply in row.replies],
    )


@router.get("/{question_id}", response_model=list[ChatMessageResponse])
async def get_messages(
    question_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int = Query(20, ge=1, le=100),
    before: int | None = Query(None, description="Return messages older than this message id"),
    include_replies: bool = Query(True, alias="includeReplies"),
) -> list[ChatMessageResponse]:
    """Get a page of top-level messages for a question, newest first."""
    if db.get(Question, question_id) is None:
        raise NotFoundError("Question not found")
    rows = ChatRepository(db).messages_for_question(
        question_id,
        limit=limit,
        before=before,
        include_replies=include_replies,
    )
    return [_serialize(row) for row in rows]
