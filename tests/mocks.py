from doclib.services.access import Actor


def make_actor(user_id=1, department_id=None, permissions=(), role_level=0):
    return Actor(
        user_id=user_id,
        department_id=department_id,
        permissions=frozenset(permissions),
        role_level=role_level,
    )


def published_types(delay_mock) -> list[str]:
    """Event types passed to a patched ``process_event.delay``, in order."""
    return [call.kwargs["event_type"] for call in delay_mock.call_args_list]


def headers_for(actor: Actor) -> dict:
    headers = {"X-User-Id": str(actor.user_id)}
    if actor.department_id is not None:
        headers["X-Department-Id"] = str(actor.department_id)
    if actor.permissions:
        headers["X-Permissions"] = ",".join(sorted(actor.permissions))
    if actor.role_level:
        headers["X-Role-Level"] = str(actor.role_level)
    return headers
