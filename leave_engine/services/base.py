import logging
from typing import Optional

from sqlalchemy.orm import Session


class BaseService:
    """
    Shared plumbing for engine services: the session they work in, the tenant
    they are scoped to, and a module logger.
    Services never commit on their own; public operations open a unit_of_work.
    """

    def __init__(self, db: Session, tenant_id: Optional[int] = None):
        self.db = db
        self.tenant_id = tenant_id
        self._logger = logging.getLogger(self.__class__.__module__)
