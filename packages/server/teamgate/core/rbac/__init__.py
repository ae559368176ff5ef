from .catalogs import (  # noqa: F401
    ADMIN_ROLE_ID,
    MEMBER_ROLE_ID,
    OWNER_ROLE_ID,
    VIEWER_ROLE_ID,
    RbacCatalog,
    get_catalog,
)
from .evaluator import (  # noqa: F401
    AuthContext,
    AuthorizationEvaluator,
    Grant,
    build_evaluator,
    build_ownership_policy,
)
