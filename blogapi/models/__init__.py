# every mapped class must be importable before the first query configures mappers
from blogapi.models.user import User, role_user
from blogapi.models.role import Permission, Role, role_permissions
from blogapi.models.post import Post
from blogapi.models.comment import Comment

__all__ = ["Comment", "Permission", "Post", "Role", "User", "role_permissions", "role_user"]
