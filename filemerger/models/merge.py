from typing import Optional

from pydantic import BaseModel, Field, model_validator

from filemerger.services.drag_reorder import GestureType


class OrderingRequest(BaseModel):
    enabled: bool = Field(..., description="Turn ordering mode on or off.")


class ReorderRequest(BaseModel):
    source_index: int = Field(..., ge=0, description="Position of the file being moved.")
    insertion_point: Optional[int] = Field(
        default=None, ge=0, description="Gap to drop into: 0 is before the first file, len after the last."
    )
    target_index: Optional[int] = Field(default=None, ge=0, description="Swap with the file at this position.")

    @model_validator(mode="after")
    def check_target(self) -> "ReorderRequest":
        if (self.insertion_point is None) == (self.target_index is None):
            raise ValueError("Provide exactly one of insertion_point or target_index.")
        return self


class DragGestureRequest(BaseModel):
    type: GestureType = Field(..., description="start | over | drop_insertion | drop_item | end")
    index: Optional[int] = Field(default=None, ge=0, description="Index of the dragged file.")
    insertion_point: Optional[int] = Field(default=None, ge=0)
    target_index: Optional[int] = Field(default=None, ge=0)


class DirectoryImportRequest(BaseModel):
    path: str = Field(..., description="Directory below the configured import root.")
    append: bool = Field(False, description="Add to the current selection instead of replacing it.")
