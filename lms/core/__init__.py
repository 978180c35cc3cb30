from lms.core.aggregation import AggregationEngine
from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate

__all__ = ["AggregationEngine", "CascadeManager", "ReferenceIntegrityManager", "paginate"]
