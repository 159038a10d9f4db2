# Services package.
#
# Each module exposes async functions that hold the business rules and
# database access for one aggregate:
#
#   user_service: User + Address + Company lifecycle, soft delete, search
#   post_service: Post CRUD, title uniqueness, pagination, search, cache
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Recognised failures are raised as
# ``app.errors.ServiceError``.
