"""User-facing messages shown by the client core."""

# Summary create/edit
NOT_SIGNED_IN_UPLOAD = "You must be signed in to upload summaries"
NOT_SIGNED_IN_EDIT = "You must be signed in to edit summaries"
NAME_REQUIRED = "Summary name is required"
CONTENT_REQUIRED = "Add at least one file or link"
CONTENT_REQUIRED_EDIT = "Keep or add at least one file or link"
CREATE_FAILED = "Failed to upload summary"
UPDATE_FAILED = "Failed to update summary"


def upload_failed(filename: str) -> str:
    """Message for a file that could not be stored."""
    return f"Failed to upload file: {filename}. Check the file and your connection."


# Summary load/delete
SUMMARY_NOT_FOUND = "Summary not found"
NO_EDIT_PERMISSION = "You don't have permission to edit this summary"
LOAD_FAILED = "Failed to load summary"
DELETE_CONFIRMATION = "Are you sure you want to delete this summary? This cannot be undone."
DELETE_FAILED = "Failed to delete summary"

# File staging
LINK_REQUIRED = "Enter a link"
LINK_INVALID = "Enter a valid Google Docs link"


def file_type_not_allowed(filename: str, content_type: str) -> str:
    """Message for a file whose type is not accepted."""
    return (
        f"File {filename} has type {content_type}, which is not allowed. "
        "Only PDF, Word (DOC/DOCX) and images are supported."
    )


def file_too_large(filename: str) -> str:
    """Message for a file over the size limit."""
    return f"File {filename} is too large. The maximum size is 50MB"


# Profile
FULL_NAME_REQUIRED = "Full name is required"
GRADE_REQUIRED = "Grade is required"
PROFILE_UPDATE_FAILED = "Failed to update profile"

# Realtime user
USER_LOAD_FAILED = "Failed to load user"
PROFILE_CREATE_FAILED = "Could not create your profile from your account details"
