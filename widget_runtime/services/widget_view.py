"""Derive the UI-visible snapshot of a widget from its controller"""
from ..schemas.conversation import MessageRole
from ..schemas.view import RenderedMessage, WidgetView
from .form_renderer import render_form
from .lifecycle import LifecycleController
from .message_formatter import format_message, format_visitor_message


def build_view(controller: LifecycleController) -> WidgetView:
    if not controller.is_ready:
        error = controller.load_error
        return WidgetView(
            title=controller.config.name if controller.config else "",
            theme_color=controller.config.theme_color if controller.config else "#3b82f6",
            load_error=error.user_message if error else None,
            lifecycle_state=controller.lifecycle_state,
        )

    config = controller.config
    machine = controller.machine

    messages = []
    for message in machine.transcript:
        if message.role == MessageRole.AGENT:
            html = format_message(message.content, link_color=config.theme_color)
        else:
            html = format_visitor_message(message.content)
        messages.append(RenderedMessage(
            role=message.role,
            html=str(html),
            has_form=message.attached_form is not None,
        ))

    form_html = None
    if machine.form_session is not None:
        form_html = str(render_form(machine.form_session, config.theme_color, submitting=machine.is_busy))

    return WidgetView(
        title=config.name,
        theme_color=config.theme_color,
        avatar_url=config.avatar_url,
        placeholder_text=config.placeholder_text or "Message...",
        show_branding=not config.hide_branding,
        conversation_state=machine.state,
        lifecycle_state=controller.lifecycle_state,
        is_typing=machine.is_busy,
        can_end_chat=controller.can_end_chat,
        faq_suggestions=[faq.question for faq in controller.faq_suggestions],
        messages=messages,
        form_html=form_html,
        notifications=[n.text for n in machine.notifications],
    )
