from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskhub.backend import Backend
from taskhub.dependencies import UserAuth, get_backend, get_current_user, get_db
from taskhub.errors import InvalidInput
from taskhub.tasks.models import TaskCompletion, TaskCreate, TaskResponse, TaskUpdate
from taskhub.tasks.services import TaskService, present_task

router = APIRouter(tags=["tasks"])


def get_task_service(db: Session = Depends(get_db), backend: Backend = Depends(get_backend)) -> TaskService:
    return TaskService(db, backend.realtime)


# Personal and public tasks
@router.get("/tasks/", response_model=List[TaskResponse])
def get_tasks(
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    """The caller's personal tasks plus everybody's public ones, newest first"""
    return task_service.get_visible_tasks(current_user.user_id)


@router.post("/tasks/", response_model=TaskResponse, status_code=201)
def create_task(
        task_data: TaskCreate,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    if task_data.channel_id:
        raise InvalidInput("Channel tasks are created under /channels/{channel_id}/tasks")
    return present_task(task_service.create_task(current_user.user_id, task_data))


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
        task_id: str,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    return present_task(task_service.get_task(task_id, current_user.user_id))


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
        task_id: str,
        task_data: TaskUpdate,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    return present_task(task_service.update_task(task_id, current_user.user_id, task_data))


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
        task_id: str,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task_service.delete_task(task_id, current_user.user_id)


@router.patch("/tasks/{task_id}/complete", response_model=TaskResponse)
def toggle_task_completion(
        task_id: str,
        completion: TaskCompletion,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task = task_service.toggle_task_completion(task_id, current_user.user_id, completion.completed)
    return present_task(task)


@router.patch("/tasks/{task_id}/items/{item_id}", response_model=TaskResponse)
def toggle_shopping_item(
        task_id: str,
        item_id: str,
        completion: TaskCompletion,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task = task_service.toggle_shopping_item(task_id, item_id, current_user.user_id, completion.completed)
    return present_task(task)


# Channel tasks
@router.get("/channels/{channel_id}/tasks", response_model=List[TaskResponse])
def get_channel_tasks(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    return task_service.get_tasks_by_channel(channel_id, current_user.user_id)


@router.post("/channels/{channel_id}/tasks", response_model=TaskResponse, status_code=201)
def create_channel_task(
        channel_id: str,
        task_data: TaskCreate,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task_data.channel_id = channel_id
    return present_task(task_service.create_task(current_user.user_id, task_data))


@router.patch("/channels/{channel_id}/tasks/{task_id}", response_model=TaskResponse)
def update_channel_task(
        channel_id: str,
        task_id: str,
        task_data: TaskUpdate,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    return present_task(task_service.update_task(task_id, current_user.user_id, task_data, channel_id))


@router.delete("/channels/{channel_id}/tasks/{task_id}", status_code=204)
def delete_channel_task(
        channel_id: str,
        task_id: str,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task_service.delete_task(task_id, current_user.user_id, channel_id)


@router.patch("/channels/{channel_id}/tasks/{task_id}/complete", response_model=TaskResponse)
def toggle_channel_task_completion(
        channel_id: str,
        task_id: str,
        completion: TaskCompletion,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task = task_service.toggle_task_completion(task_id, current_user.user_id, completion.completed, channel_id)
    return present_task(task)


@router.patch("/channels/{channel_id}/tasks/{task_id}/items/{item_id}", response_model=TaskResponse)
def toggle_channel_shopping_item(
        channel_id: str,
        task_id: str,
        item_id: str,
        completion: TaskCompletion,
        current_user: UserAuth = Depends(get_current_user),
        task_service: TaskService = Depends(get_task_service),
):
    task = task_service.toggle_shopping_item(task_id, item_id, current_user.user_id, completion.completed, channel_id)
    return present_task(task)
