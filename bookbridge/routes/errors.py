from fastapi import HTTPException

from bookbridge.database import StoreError
from bookbridge.workflow import WorkflowError


def run(operation, *args, **kwargs):
    """
    Call a service operation, turning refusals and store failures into HTTP errors.

    WorkflowError and StoreError both carry the status code to answer with;
    their message becomes the JSON `detail`.
    """
    try:
        return operation(*args, **kwargs)
    except (WorkflowError, StoreError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
