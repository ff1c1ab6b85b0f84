"""Lua scripts executed atomically by the store.

Every script takes the lock key as ``KEYS[1]`` and the holder token as
``ARGV[1]``. Lease durations are passed in milliseconds as ``ARGV[2]``.
"""

# 1 deleted, 0 absent, -1 held by someone else
RELEASE = """
local current = redis.call("GET", KEYS[1])
if current == false then
    return 0
elseif current == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return -1
"""

RENEW = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
end
return 0
"""

INSPECT = """
local current = redis.call("GET", KEYS[1])
if current == false then
    return {"", 0, -2}
end
return {current, 1, redis.call("PTTL", KEYS[1])}
"""

# new count on success, 0 when another holder owns the record
REENTRANT_ACQUIRE = """
local current = redis.call("HGET", KEYS[1], "holder")
local count
if current == false then
    redis.call("HSET", KEYS[1], "holder", ARGV[1], "count", "1")
    count = 1
elseif current == ARGV[1] then
    count = redis.call("HINCRBY", KEYS[1], "count", "1")
else
    return 0
end
redis.call("PEXPIRE", KEYS[1], ARGV[2])
return count
"""

# remaining count (0 means deleted), -1 absent, -2 held by someone else
REENTRANT_RELEASE = """
local current = redis.call("HGET", KEYS[1], "holder")
if current == false then
    return -1
elseif current ~= ARGV[1] then
    return -2
end
local count = redis.call("HINCRBY", KEYS[1], "count", "-1")
if count <= 0 then
    redis.call("DEL", KEYS[1])
    return 0
end
return count
"""

REENTRANT_RENEW = """
if redis.call("HGET", KEYS[1], "holder") == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
end
return 0
"""

REENTRANT_INSPECT = """
local current = redis.call("HGET", KEYS[1], "holder")
if current == false then
    return {"", 0, -2}
end
local count = tonumber(redis.call("HGET", KEYS[1], "count")) or 0
return {current, count, redis.call("PTTL", KEYS[1])}
"""
