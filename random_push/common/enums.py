from enum import Enum

class RedisPrefix(str, Enum):
    RANDOM_PUSH = "random_push"
    TOKEN = "token"
    USED_TOKENS = "used_tokens"
