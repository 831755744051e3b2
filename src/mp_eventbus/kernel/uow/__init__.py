"""Kernel unit of work – transactional boundary port."""
from mp_eventbus.kernel.uow.unit_of_work import UnitOfWork

__all__ = ["UnitOfWork"]
