from enum import Enum


class TaskType(str, Enum):
    CREATE_CONTAINER = "create-container"
    START_CONTAINER = "start-container"
    DELETE_CONTAINER = "delete-container"
    CLONE_REPO = "clone-repo"
    GENERIC = "generic"
