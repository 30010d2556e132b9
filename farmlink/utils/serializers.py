from bson import ObjectId
from datetime import datetime


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict | None, *, exclude: tuple = ()) -> dict | None:
    """
    Make a Mongo document JSON-safe: ObjectIds and datetimes become strings
    (recursively) and `_id` is exposed as `id`.
    """
    if not doc:
        return doc

    out = {}
    for k, v in doc.items():
        if k in exclude:
            continue
        out["id" if k == "_id" else k] = serialize_value(v)
    return out


def serialize_docs(docs, *, exclude: tuple = ()):
    return [serialize_doc(d, exclude=exclude) for d in docs]


# -------------------------------
# Accounts never leave with secrets
# -------------------------------

ACCOUNT_PRIVATE_FIELDS = ("password",)


def serialize_user(user: dict) -> dict:
    return serialize_doc(user, exclude=ACCOUNT_PRIVATE_FIELDS)


def public_user(user: dict | None) -> dict | None:
    if not user:
        return None
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "role": user.get("current_role") or user.get("role"),
        "location": user.get("location"),
    }
