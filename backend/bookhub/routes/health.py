from fastapi import APIRouter


router = APIRouter()


@router.get("/")
def welcome():
    return {"success": True, "message": "Welcome to the BookHub Backend!!!"}


@router.get("/health")
def health():
    return {"status": "ok"}
