# Inbound
CREATE_ROOM = "createRoom"
JOIN_ROOM = "joinRoom"
RECONNECT = "reconnect"
CHECK_ROOM = "checkRoom"
KICK_PLAYER = "kickPlayer"
START_GAME = "startGame"
SUBMIT_ANSWER = "submitAnswer"
NEXT_ROUND = "nextRound"
LEAVE_ROOM = "leaveRoom"
PLAYER_READY = "playerReady"

# Outbound
ROOM_UPDATE = "roomUpdate"
RECONNECTED = "reconnected"
PLAYER_KICKED = "playerKicked"
GAME_STARTED = "gameStarted"
ROUND_RESULT = "roundResult"
GAME_OVER = "gameOver"
ROOM_DESTROYED = "roomDestroyed"
ERROR = "error"
