# Line protocol constants (wire strings shared with unmodified peers)

DEFAULT_GROUP = "defaultGroup"

# Handshake
PROMPT_USERNAME = "Enter your username:"
NOTICE_USERNAME_TAKEN = "Username already taken. Please choose another username."
NOTICE_USERNAME_INVALID = "Invalid username. Please choose another username."
NOTICE_WELCOME = "Welcome, {username}!"
NOTICE_GOODBYE = "Goodbye!"

# Delivered message formats
FMT_PRIVATE = "{sender} (private): {message}"
FMT_GROUP = "[{group}] {sender}: {message}"
# Plain lobby lines carry an extra ": " before the body.
FMT_DEFAULT_BODY = ": {message}"

# Membership notices
NOTICE_GROUP_CREATED = "Group {group} created."
NOTICE_GROUP_NOT_FOUND = "Group does not exist."
NOTICE_ALREADY_IN_GROUP = "You are already in the group: {group}"
NOTICE_JOINED_GROUP = "You have joined the group: {group}"
NOTICE_LEFT_GROUP = "You have left the group: {group}"
NOTICE_NOT_A_MEMBER = "You are not a member of the group: {group}"
NOTICE_LEFT_DEFAULT = "You have left the default group."
NOTICE_REJOINED_DEFAULT = "You have rejoined the default group."
NOTICE_CANNOT_LEAVE_DEFAULT = "You cannot leave the default group."
NOTICE_USER_NOT_FOUND = "User not found."

# Listings
NOTICE_USERS = "Connected users: {names}"
NOTICE_NO_USERS = "No users are currently connected."
NOTICE_GROUPS = "Available groups: {names}"
NOTICE_NO_GROUPS = "No groups have been created."

# Dispatcher
NOTICE_BARE_SLASH = "Please enter a message after '/'."
NOTICE_DEFAULT_GROUP_CONFLICT = (
    "You cannot send messages to default group while being in other groups."
)
NOTICE_UNKNOWN_COMMAND = "Unknown command."

USAGE_SEND_USER = "Usage: /sendUser username message"
USAGE_SEND_GROUP = "Usage: /sendGroup groupName message"
USAGE_CREATE = "Usage: /create groupName"
USAGE_JOIN = "Usage: /join groupName"
USAGE_LEAVE = "Usage: /leave groupName"

# Command words
CMD_QUIT = "/quit"
CMD_SEND_USER = "/sendUser"
CMD_CREATE = "/create"
CMD_JOIN = "/join"
CMD_LEAVE = "/leave"
CMD_SEND_GROUP = "/sendGroup"
CMD_LIST_USERS = "/listUsers"
CMD_LIST_GROUPS = "/listGroups"

# Reticulum announce app data (CBOR map)
ANNOUNCE_PROTO = "minichat"
ANNOUNCE_VERSION = 1
