import logging
from contextlib import asynccontextmanager
from typing import Annotated, List

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from config import settings
from database import Database, load_database
from logging_config import setup_logging
from schemas import Credentials, Task, User

logger = logging.getLogger(__name__)


# Load the snapshot once at startup; the same Database serves every request
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_DIR, settings.LOG_LEVEL.upper())
    app.state.database = load_database(settings.DATABASE_PATH)
    yield


# Initialize FastAPI
app = FastAPI(title="Task Manager", lifespan=lifespan)

# Allow browser clients running on localhost (and file:// pages, which send Origin: null)
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Accept", "Content-Type"],
    max_age=3600,
)


# Dependency returning the shared Database. Tests override it.
def get_database(request: Request) -> Database:
    return request.app.state.database


DatabaseDep = Annotated[Database, Depends(get_database)]


def _warn_if_not_saved(saved: bool, what: str):
    # The change is kept in memory either way; only the snapshot is stale
    if not saved:
        logger.warning("%s applied in memory but the snapshot was not saved", what)


# --- Task Endpoints ---
@app.post("/task", status_code=status.HTTP_201_CREATED)
def create_task(task: Task, db: DatabaseDep):
    _warn_if_not_saved(db.upsert_task(task), f"Task {task.id}")
    return Response(status_code=status.HTTP_201_CREATED)


@app.get("/task/{task_id}", response_model=Task)
def read_task(task_id: int, db: DatabaseDep):
    task = db.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


# Tasks carry their own id, so the body decides which task is replaced
@app.put("/task/{task_id}", status_code=status.HTTP_201_CREATED)
def update_task(task_id: int, task: Task, db: DatabaseDep):
    if task.id != task_id:
        logger.debug("PUT /task/%d carries task id %d; using the body id", task_id, task.id)
    _warn_if_not_saved(db.upsert_task(task), f"Task {task.id}")
    return Response(status_code=status.HTTP_201_CREATED)


@app.get("/task", response_model=List[Task])
def read_all_tasks(db: DatabaseDep):
    return db.list_tasks()


# Deleting a task that does not exist is not an error; the body is then null
@app.delete("/task/{task_id}", response_model=Task | None)
def delete_task(task_id: int, db: DatabaseDep):
    return db.delete_task(task_id)


# --- User Endpoints ---
@app.post("/register", status_code=status.HTTP_201_CREATED)
def register_user(user: User, db: DatabaseDep):
    _warn_if_not_saved(db.upsert_user(user), f"User {user.id}")
    return Response(status_code=status.HTTP_201_CREATED)


@app.post("/login", response_class=PlainTextResponse)
def login(credentials: Credentials, db: DatabaseDep):
    # Same answer for unknown users and wrong passwords
    if not db.login(credentials.username, credentials.password):
        logger.info("Failed login for %r", credentials.username)
        return PlainTextResponse("Invalid username or password", status_code=status.HTTP_400_BAD_REQUEST)
    return "Logged in!"


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
