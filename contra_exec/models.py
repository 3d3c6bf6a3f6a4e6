"""
contra-exec Core Data Models
Shared models for queue messages, stored files and task records
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """Terminal task states written to the status store"""
    DONE = "done"
    FAILED = "failed"


class Collection(str, Enum):
    """Logical content store collections"""
    DATA = "data"
    CONTROL = "control"
    OUTPUT = "output"


class JobDescriptor(BaseModel):
    """Job message consumed from the execution queue"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    task_id: str = Field(alias="taskId", min_length=1)
    data_file_id: str = Field(alias="dataFid", min_length=1)
    control_file_id: str = Field(alias="controlFid", min_length=1)


class FileDescriptor(BaseModel):
    """Metadata returned by the content store for a stored file"""
    file_id: str
    filename: str = Field(min_length=1)
    collection: Collection
