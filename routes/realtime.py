from flask import request
from flask_socketio import SocketIO, emit

from integrations.notifications import get_relay
from utils.auth_context import user_for_token

socketio = SocketIO()


@socketio.on("user:join")
def on_join(data):
    token = (data or {}).get("token") if isinstance(data, dict) else None
    _sess, user = user_for_token(token)
    if user is None:
        emit("connection:error", {"message": "Authentication required"})
        return

    get_relay().registry.add(user.id, request.sid)
    emit("connection:success", {"message": "Connected to server", "userId": user.id})


@socketio.on("disconnect")
def on_disconnect(*_reason):
    get_relay().registry.remove(request.sid)


def socket_emitter(event_name, payload, sid):
    socketio.emit(event_name, payload, to=sid)
