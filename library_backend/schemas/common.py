from pydantic import BaseModel

class MessageResponse(BaseModel):
    """Envelope returned by every mutation and every handled error."""
    success: bool
    message: str
