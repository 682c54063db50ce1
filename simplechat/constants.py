# Wire protocol constants (command tokens, reply strings, formats)

DEFAULT_PORT = 5555
DEFAULT_HOST = "localhost"
DEFAULT_BIND_HOST = "0.0.0.0"

LINE_TERMINATOR = "\n"

# Longest inbound line accepted, terminator included.
MAX_LINE_BYTES = 64 * 1024

# Client -> server
CMD_LOGIN = "#login"

# Operator console commands
CMD_PREFIX = "#"
ADMIN_QUIT = "#quit"
ADMIN_STOP = "#stop"
ADMIN_CLOSE = "#close"
ADMIN_SETPORT = "#setport"
ADMIN_START = "#start"
ADMIN_GETPORT = "#getport"
ADMIN_STATS = "#stats"

# Client console commands
CLIENT_QUIT = "#quit"
CLIENT_LOGOFF = "#logoff"
CLIENT_SETHOST = "#sethost"
CLIENT_SETPORT = "#setport"
CLIENT_LOGIN = "#login"
CLIENT_GETHOST = "#gethost"
CLIENT_GETPORT = "#getport"

# Server -> client replies (unicast)
ERR_ALREADY_LOGGED_IN = "Error: Already logged in as {login_id}"
ERR_LOGIN_USAGE = "Error: CMD Usage is #login <loginId>"
MSG_LOGIN_OK = "Login working! Welcome {login_id}!"
ERR_MUST_LOGIN = "Error: Must login with first command which is #login <loginId>!!!"

# Broadcast formats
RELAY_FORMAT = "{login_id}> {text}"
SYSTEM_FORMAT = "SERVER msg> {text}"

# Operator replies
OP_START_FAILED = "Start failed."
OP_ALREADY_LISTENING = "Server already listening."
OP_ALREADY_STOPPED = "Already stopped."
OP_ERROR_CLOSING = "Error closing."
OP_SETPORT_WHILE_OPEN = "Cannot change port while server is open. Use #close first."
OP_SETPORT_USAGE = "Usage: #setport <port>"
OP_PORT_NOT_NUMBER = "Port must be a number."
OP_PORT_OUT_OF_RANGE = "Port must be between 0 and 65535."
OP_PORT_SET = "Port set to {port}"
OP_PORT = "Port: {port}"
OP_UNKNOWN = "Unknown command."
OP_COULD_NOT_LISTEN = "ERROR - Could not listen for clients!"

PORT_MIN = 0
PORT_MAX = 65535
