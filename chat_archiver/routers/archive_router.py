# chat_archiver/routers/archive_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chat_archiver import schemas
from chat_archiver.dependencies import get_store
from chat_archiver.services.message_store import MessageStore

router = APIRouter()


@router.get("/servers", response_model=List[schemas.ServerOut])
def list_servers(store: MessageStore = Depends(get_store)):
    return store.get_all_servers()


@router.get("/servers/{server_id}", response_model=schemas.ServerOut)
def get_server(server_id: str, store: MessageStore = Depends(get_store)):
    server = store.get_server(server_id)
    if server is None:
        raise HTTPException(status_code=404, detail="Server not found")
    return server


@router.get("/servers/{server_id}/channels", response_model=List[schemas.ChannelOut])
def list_server_channels(server_id: str, store: MessageStore = Depends(get_store)):
    return store.get_channels_by_server(server_id)


@router.get("/channels", response_model=List[schemas.ChannelOut])
def list_channels(server_id: Optional[str] = None, store: MessageStore = Depends(get_store)):
    if server_id:
        return store.get_channels_by_server(server_id)
    return store.get_all_channels()


@router.get("/channels/{channel_id}", response_model=schemas.ChannelOut)
def get_channel(channel_id: str, store: MessageStore = Depends(get_store)):
    channel = store.get_channel(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


@router.get("/messages/{channel_id}", response_model=List[schemas.MessageOut])
def list_messages(channel_id: str,
                  limit: int = Query(50, ge=1, le=500),
                  offset: int = Query(0, ge=0),
                  store: MessageStore = Depends(get_store)):
    return store.get_messages_by_channel(channel_id, limit, offset)
