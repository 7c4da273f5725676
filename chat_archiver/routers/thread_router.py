# chat_archiver/routers/thread_router.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from chat_archiver import schemas
from chat_archiver.controllers.thread_controller import MessageNode, ThreadReconstructor
from chat_archiver.dependencies import get_store, get_thread_reconstructor
from chat_archiver.services.message_store import MessageStore

router = APIRouter(prefix="/threads")


def _node_out(node: MessageNode) -> schemas.MessageNodeOut:
    return schemas.MessageNodeOut(
        message=schemas.MessageOut.model_validate(node.message),
        replies=[_node_out(reply) for reply in node.replies],
    )


@router.get("/{message_id}", response_model=schemas.ThreadResponse)
def get_thread(message_id: str, channel_id: Optional[str] = None,
               store: MessageStore = Depends(get_store),
               reconstructor: ThreadReconstructor = Depends(get_thread_reconstructor)):
    message = store.get_message(message_id, channel_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")

    summary = reconstructor.summarize(message)
    return schemas.ThreadResponse(
        tree=_node_out(summary.tree),
        depth=summary.depth,
        message_count=summary.message_count,
    )
