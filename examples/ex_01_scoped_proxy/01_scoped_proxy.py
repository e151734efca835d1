"""Scoped proxies: inject request-bound values into application singletons.

``AuditLog`` lives for the whole application, but it needs the context of the
request being handled. Binding ``RequestContext`` through a scoped proxy gives
the singleton a stand-in that resolves the current request on every use.
"""

from __future__ import annotations

from proxywire import Container, Lifetime, Scope, ScopedProxyBinder, is_scoped_proxy


class RequestContext:
    created = 0

    def __init__(self) -> None:
        RequestContext.created += 1
        self.request_id = RequestContext.created


class AuditLog:
    def __init__(self, context: RequestContext) -> None:
        self.context = context

    def record(self, action: str) -> str:
        return f"request={self.context.request_id} action={action}"


def main() -> None:
    container = Container()
    ScopedProxyBinder.using(container).bind(RequestContext).in_scope(Scope.REQUEST)
    container.add_concrete(AuditLog, lifetime=Lifetime.SINGLETON)
    container.compile()

    audit_log = container.resolve(AuditLog)
    print(f"is_proxy={is_scoped_proxy(audit_log.context)}")  # => is_proxy=True
    print(f"isinstance={isinstance(audit_log.context, RequestContext)}")  # => isinstance=True

    with container.enter_scope(Scope.REQUEST):
        print(audit_log.record("login"))  # => request=1 action=login
        print(audit_log.record("view"))  # => request=1 action=view

    with container.enter_scope(Scope.REQUEST):
        print(audit_log.record("logout"))  # => request=2 action=logout

    print(f"same_singleton={container.resolve(AuditLog) is audit_log}")  # => same_singleton=True


if __name__ == "__main__":
    main()
