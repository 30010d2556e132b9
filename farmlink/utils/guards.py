from bson import ObjectId
from bson.errors import InvalidId

from farmlink.utils.errors import ValidationError

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) would mint a fresh id
    if value is None:
        raise ValidationError(f"Invalid {name}")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {name}")


# -------------------------------
# Ownership Guard
# -------------------------------

def is_owner(doc: dict, user: dict, field: str = "seller_id") -> bool:
    return bool(doc) and doc.get(field) == user["_id"]
