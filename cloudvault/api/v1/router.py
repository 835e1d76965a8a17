from fastapi import APIRouter

from cloudvault.api.v1.endpoints import auth, users, files, folders, items, search, shares, links

api_router = APIRouter()

# Include routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(folders.router, prefix="/folders", tags=["folders"])
api_router.include_router(items.router, prefix="/items", tags=["items"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(shares.router, prefix="/shares", tags=["shares"])
api_router.include_router(links.router, prefix="/links", tags=["links"])
