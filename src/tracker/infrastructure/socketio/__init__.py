from src.tracker.infrastructure.socketio.channel import SocketIOPushChannel

__all__ = ["SocketIOPushChannel"]
