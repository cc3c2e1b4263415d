class ListResponseMixin:
    """Adds ``list_response`` to a service exposing ``list``.

    ``limit`` and ``offset`` are read from keyword arguments or, failing that,
    from the last two positional arguments, matching every ``list`` signature
    in the services package.
    """

    def list_response(self, db, *args, **kwargs):
        items = self.list(db, *args, **kwargs)
        limit = kwargs.get("limit")
        offset = kwargs.get("offset")
        if limit is None and len(args) >= 2:
            limit, offset = args[-2], args[-1]
        return {
            "items": items,
            "count": len(items),
            "limit": limit,
            "offset": offset,
        }
