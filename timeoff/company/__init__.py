"""Company module — Company, Department, supervisors and employees."""

from timeoff.company.models import Company, Department, DepartmentSupervisor, User

__all__ = ["Company", "Department", "DepartmentSupervisor", "User"]
