import logging
from datetime import datetime

logger = logging.getLogger(__name__)


async def log_audit(
    db,
    actor: dict,
    action: str,
    *,
    target_id=None,
    metadata: dict | None = None,
):
    """
    Append-only trail of privileged actions (moderation, refunds).
    """
    await db.audit_logs.insert_one({
        "actor_id": actor["_id"],
        "actor_role": actor.get("current_role") or actor.get("role"),
        "action": action,
        "target_id": target_id,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    })
    logger.info("AUDIT %s actor=%s target=%s", action, actor["_id"], target_id)
