import asyncio

from passlib.context import CryptContext

# argon2id, RFC 9106 second recommended profile: 64 MiB, 3 passes, 4 lanes.
ARGON2_MEMORY_COST_KIB: int = 65_536
ARGON2_TIME_COST: int = 3
ARGON2_PARALLELISM: int = 4

context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__type="id",
    argon2__memory_cost=ARGON2_MEMORY_COST_KIB,
    argon2__time_cost=ARGON2_TIME_COST,
    argon2__parallelism=ARGON2_PARALLELISM,
)


def hash_password(password: str) -> str:
    return context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return context.verify(plain, hashed)


# Hashing is CPU-bound; the async variants keep it off the event loop.

async def hash_password_async(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password, password)


async def verify_password_async(plain: str, hashed: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, plain, hashed)
