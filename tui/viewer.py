"""
Terminal document viewer - connects a wallet, renders the document by access
decision and lets the owner review access requests.
"""

import sys
import threading

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, VerticalScroll
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Input, Label, Select, Static

from docvault.agents.rewriter import RemoteRewriter
from docvault.core import config
from docvault.core.errors import PermissionDeniedError
from docvault.core.renderer import FieldView, UnmaskController, UnmaskState
from docvault.core.roles import RoleStore
from docvault.core.schema import AccessDecision, RequestStatus, Role
from docvault.core.session import VaultService, WalletSession
from util.logging import logger

DECISION_BADGES = {
    AccessDecision.FULL: "✅ full",
    AccessDecision.PARTIAL: "🔸 partial",
    AccessDecision.SEMANTIC: "🤖 semantic",
    AccessDecision.DENIED: "🔒 denied",
}


def format_field(view: FieldView) -> str:
    line = f"{view.name} [{view.sensitivity.value}] {DECISION_BADGES[view.decision]}\n  {view.display_value}"
    if view.unmask_state == UnmaskState.LOADING:
        line += "\n  ⏳ Generating semantic summary..."
    elif view.unmask_state == UnmaskState.ERROR:
        line += f"\n  ❌ {view.error} (press Reveal to retry)"
    return line


class ConnectScreen(Screen):
    """Wallet address entry."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("🔐 DocVault", classes="title"),
            Static("Connect a wallet to view the document", classes="subtitle"),
            Label("Wallet address:", classes="label"),
            Input(id="wallet-address", placeholder="0x..."),
            Button("Connect", id="connect-button", variant="primary"),
            id="connect-container",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "connect-button":
            self.handle_connect()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "wallet-address":
            self.handle_connect()

    def handle_connect(self) -> None:
        address = self.query_one("#wallet-address", Input).value
        if not address.strip():
            self.notify("Enter a wallet address", severity="warning")
            return
        self.app.connect(address)


class DocumentScreen(Screen):
    """Field-by-field document view for a connected wallet with a role."""

    def __init__(self, session: WalletSession):
        super().__init__()
        self.session = session

    def compose(self) -> ComposeResult:
        yield Header()
        role = self.session.role.value if self.session.role else "none"
        owner = " (owner)" if self.session.is_owner else ""
        yield Static(f"Wallet {self.session.address} - role: {role}{owner}", classes="subtitle")
        with VerticalScroll(id="fields"):
            for field in self.app.service.fields:
                with Horizontal(classes="field-row"):
                    yield Static("", id=f"field-{field.id}", classes="field")
                    yield Button("Reveal", id=f"reveal-{field.id}", classes="reveal")
        if self.session.is_owner:
            yield Button("Pending Requests", id="pending-button", variant="primary")
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_fields()

    def refresh_fields(self) -> None:
        views = self.app.service.view_document(self.session.address, self.app.controller)
        for view in views:
            self.query_one(f"#field-{view.field_id}", Static).update(format_field(view))
            button = self.query_one(f"#reveal-{view.field_id}", Button)
            button.display = view.can_unmask
            button.label = "Hide" if view.unmask_state == UnmaskState.REVEALED else "Reveal"

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id.startswith("reveal-"):
            self.toggle_field(button_id[len("reveal-"):])
        elif button_id == "pending-button":
            self.app.push_screen(PendingRequestsScreen(self.session))

    def toggle_field(self, field_id: str) -> None:
        field = self.app.service.get_field(field_id)
        controller = self.app.controller
        if field is None:
            return
        if controller.state(field_id) == UnmaskState.LOADING:
            controller.cancel(field_id)
            self.refresh_fields()
            return
        if controller.cached(field_id) is not None:
            controller.toggle(field)
            self.refresh_fields()
            return

        def work():
            controller.reveal(field)
            self.app.call_from_thread(self.refresh_fields)

        self.run_worker(work, thread=True, exclusive=False)
        # The worker flips the state to loading almost immediately
        self.set_timer(0.05, self.refresh_fields)


class RequestAccessScreen(Screen):
    """Shown to a wallet with no role: submit a request and watch its status."""

    def __init__(self, session: WalletSession):
        super().__init__()
        self.session = session

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(
            Static("No role assigned to this wallet", classes="title"),
            Static("", id="request-status", classes="subtitle"),
            Label("Your name:", classes="label"),
            Input(id="request-name", placeholder="Name"),
            Select([(role.value, role) for role in (Role.FOUNDER, Role.ENGINEER, Role.MARKETING)],
                   id="request-role", prompt="Requested role"),
            Button("Request Access", id="request-button", variant="primary"),
            id="request-container",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.show_status(self.app.service.request_status(self.session.address))

    def show_status(self, request) -> None:
        status = self.query_one("#request-status", Static)
        if request is None:
            status.update("No request submitted yet")
        elif request.status == RequestStatus.PENDING:
            status.update(f"⏳ Request for {request.requested_role.value} is waiting for owner review")
        elif request.status == RequestStatus.DECLINED:
            status.update("❌ Your last request was declined. You may submit a new one.")
        else:
            status.update(f"✅ Approved as {request.requested_role.value}")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id != "request-button":
            return
        name = self.query_one("#request-name", Input).value
        role = self.query_one("#request-role", Select).value
        if not name.strip() or not isinstance(role, Role):
            self.notify("Enter a name and pick a role", severity="warning")
            return
        request = self.app.service.request_access(self.session.address, name, role)
        if request is None:
            self.notify("Request could not be submitted", severity="error")
            return
        self.notify(f"📨 Requested {role.value} access", title="Request Sent")
        self.show_status(request)


class PendingRequestsScreen(Screen):
    """Owner review of pending access requests."""

    def __init__(self, session: WalletSession):
        super().__init__()
        self.session = session
        self._subscription = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("📋 Pending access requests", classes="title")
        yield VerticalScroll(id="pending-list")
        yield Button("Back", id="back-button")
        yield Footer()

    def on_mount(self) -> None:
        self.reload()
        # New or withdrawn requests from other sessions
        self._subscription = self.app.service.store.subscribe_requests(
            lambda pending: self.app.run_on_ui(self.reload)
        )

    def on_unmount(self) -> None:
        if self._subscription:
            self._subscription.unsubscribe()

    def reload(self) -> None:
        container = self.query_one("#pending-list", VerticalScroll)
        container.remove_children()
        try:
            pending = self.app.service.list_pending(self.session.address)
        except PermissionDeniedError as e:
            self.notify(str(e), severity="error")
            return
        if not pending:
            container.mount(Static("✅ No pending requests"))
            return
        for request in pending:
            container.mount(Horizontal(
                Static(f"{request.name} ({request.wallet_address}) wants {request.requested_role.value}",
                       classes="field"),
                Button("Approve", id=f"approve-{request.id}", variant="success"),
                Button("Decline", id=f"decline-{request.id}", variant="error"),
                classes="field-row",
            ))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id == "back-button":
            self.app.pop_screen()
            return
        action, _, request_id = button_id.partition("-")
        if action == "approve":
            ok = self.app.service.approve(self.session.address, request_id)
        elif action == "decline":
            ok = self.app.service.decline(self.session.address, request_id)
        else:
            return
        if ok:
            self.notify(f"Request {action}d", title="Access Requests")
        else:
            self.notify(f"Could not {action} the request, try again", severity="error")
        self.reload()


class ViewerApp(App):
    """DocVault terminal viewer."""

    CSS = """
    .title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
        color: cyan;
    }

    .subtitle {
        text-align: center;
        margin-bottom: 1;
        color: gray;
    }

    .label {
        margin-bottom: 1;
    }

    .field-row {
        height: auto;
        border: solid white;
        padding: 0 1;
    }

    .field {
        width: 1fr;
    }

    #connect-container, #request-container {
        width: 70;
        height: auto;
        align: center middle;
    }
    """

    TITLE = "DocVault Viewer"
    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, service: VaultService = None, rewriter=None):
        super().__init__()
        self.service = service or VaultService(RoleStore(config.DB_PATH))
        self.rewriter = rewriter or RemoteRewriter()
        self.controller = None
        self.session = None
        self._ui_thread = None
        self._subscriptions = []

    def on_mount(self) -> None:
        self._ui_thread = threading.get_ident()
        logger.info("DocVault viewer started")
        self.service.store.feed.start()
        self.push_screen(ConnectScreen())

    def connect(self, address: str) -> None:
        self._release_subscriptions()
        self.session = self.service.connect(address)
        self.controller = UnmaskController(self.session.role, self.rewriter)
        if self.session.claimed_ownership:
            self.notify("👑 You are the first wallet and now own this vault", title="Owner")

        self._subscriptions.append(
            self.service.store.subscribe_wallet(self.session.address, self._on_role_changed)
        )
        self._subscriptions.append(
            self.service.store.subscribe_request_status(self.session.address, self._on_request_changed)
        )
        self._show_session()

    def run_on_ui(self, callback, *args) -> None:
        """
        Change feed callbacks run on the poller thread or, after a local write, on the UI
        thread. Off-thread callers only queue the work so the feed is never held up by the UI.
        """
        if threading.get_ident() == self._ui_thread:
            callback(*args)
        else:
            self.call_later(callback, *args)

    def _show_session(self) -> None:
        if self.session.has_access:
            self.switch_screen(DocumentScreen(self.session))
        else:
            self.switch_screen(RequestAccessScreen(self.session))

    def _on_role_changed(self, role) -> None:
        self.run_on_ui(self._apply_role, role)

    def _apply_role(self, role) -> None:
        if self.session is None or role == self.session.role:
            return
        self.session.role = role
        self.controller.clear()
        self.controller.role = role
        self.notify(f"Role is now {role.value if role else 'none'}", title="Role Updated")
        self._show_session()

    def _on_request_changed(self, request) -> None:
        self.run_on_ui(self._apply_request_status, request)

    def _apply_request_status(self, request) -> None:
        if isinstance(self.screen, RequestAccessScreen):
            self.screen.show_status(request)

    def _release_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def on_unmount(self) -> None:
        self._release_subscriptions()
        self.service.store.feed.stop()


def main():
    """Viewer entry point."""
    issues = config.validate_config()
    if issues:
        print(f"❌ Configuration error: {issues}")
        sys.exit(1)
    try:
        ViewerApp().run()
    except KeyboardInterrupt:
        print("\nℹ️  Viewer interrupted by user")


if __name__ == "__main__":
    main()
