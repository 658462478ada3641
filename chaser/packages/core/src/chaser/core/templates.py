"""消息模板 -- (EscalationTier, Channel) 单表渲染

所有渠道文案都来自 TEMPLATES 一张表（截止时间已过时改用
OVERDUE_TEMPLATES），占位符:
    {title} {name} {priority} {due} {link} {remaining} {remaining_upper}

email 渠道只存正文首段（允许内联 HTML），由 render_message 套入
统一的 HTML 外壳；填入 email 的变量全部经过 html.escape。
"""

import html
import math
from datetime import datetime

from pydantic import BaseModel, Field

from .models.enums import Channel, EscalationTier
from .models.queue import ChannelSelection
from .models.task import Task

_T = EscalationTier
_C = Channel

TEMPLATES: dict[tuple[EscalationTier, Channel], str] = {
    # tier 0: 手动 nudge
    (_T.NUDGE, _C.SUBJECT): "👉 Nudge: {title}",
    (_T.NUDGE, _C.EMAIL): "This is a friendly nudge about your task:",
    (_T.NUDGE, _C.SMS): "👉 Nudge: {title} is due {due}. Please take a look.",
    (_T.NUDGE, _C.CALL): (
        "Hello {name}. This is a quick nudge about your task: {title}. It is due in {remaining}."
    ),
    (_T.NUDGE, _C.SLACK): (
        "👉 *Nudge*\n\nHey {name}! 👋\n\nQuick nudge about your task:\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n<{link}|🔗 View Task>"
    ),
    # tier 1: upcoming
    (_T.UPCOMING, _C.SUBJECT): "Upcoming: {title} - Due in {remaining}",
    (_T.UPCOMING, _C.EMAIL): "This is a friendly reminder about your upcoming task:",
    (_T.UPCOMING, _C.SMS): "📋 Reminder: {title} due in {remaining}.",
    (_T.UPCOMING, _C.CALL): (
        "Hello {name}. This is a friendly reminder about your task: {title}. "
        "It is due in {remaining}."
    ),
    (_T.UPCOMING, _C.SLACK): (
        "📋 *Upcoming Task*\n\nHey {name}! 👋\n\nFriendly reminder about your task:\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n<{link}|🔗 View Task>"
    ),
    # tier 2: reminder
    (_T.REMINDER, _C.SUBJECT): "Reminder: {title} - Due in {remaining}",
    (_T.REMINDER, _C.EMAIL): (
        "This is a reminder that your task is due in <strong>{remaining}</strong>. "
        "Please update your progress."
    ),
    (_T.REMINDER, _C.SMS): "📋 Reminder: {title} due in {remaining}. Please plan accordingly.",
    (_T.REMINDER, _C.CALL): (
        "Hello {name}. Reminder: Your task {title} is due in {remaining}. "
        "Please plan accordingly."
    ),
    (_T.REMINDER, _C.SLACK): (
        "🔔 *Task Reminder*\n\nHey {name}! 👋\n\n*{remaining} remaining* for your task:\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n<{link}|🔗 View Task>"
    ),
    # tier 3: urgent
    (_T.URGENT, _C.SUBJECT): "⚠️ URGENT: {title} - Only {remaining} remaining!",
    (_T.URGENT, _C.EMAIL): (
        "This is an urgent reminder. Your task is due in <strong>{remaining}</strong>. "
        "Please prioritize this."
    ),
    (_T.URGENT, _C.SMS): "⚠️ URGENT: {title} - Only {remaining} remaining! Please attend to it.",
    (_T.URGENT, _C.CALL): (
        "Hello {name}. Urgent reminder: Only {remaining} remaining for your task: {title}. "
        "Please attend to it as soon as possible."
    ),
    (_T.URGENT, _C.SLACK): (
        "⚠️ *URGENT - Action Required*\n\n@{name}\n\n*Only {remaining} remaining!* "
        "Please attend to this task:\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n"
        "<{link}|🔗 View Task NOW>"
    ),
    # tier 4: critical
    (_T.CRITICAL, _C.SUBJECT): "🚨 CRITICAL: {title} - Immediate Action Required!",
    (_T.CRITICAL, _C.EMAIL): (
        "<strong>Critical Alert!</strong> Your task is due in <strong>{remaining}</strong>. "
        "Immediate action is required to avoid being overdue."
    ),
    (_T.CRITICAL, _C.SMS): (
        "🚨 CRITICAL: {title} - Only {remaining} left! Will be OVERDUE soon. Take action NOW!"
    ),
    (_T.CRITICAL, _C.CALL): (
        "ALERT! {name}, this is a critical reminder. Only {remaining} remaining for your "
        "task: {title}. It will be overdue soon. Please take action immediately."
    ),
    (_T.CRITICAL, _C.SLACK): (
        "🚨 *CRITICAL ALERT*\n\n@{name}\n\n*ONLY {remaining_upper} REMAINING!*\n"
        "This task will be OVERDUE soon!\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n"
        "<{link}|🔗 TAKE ACTION NOW>"
    ),
}

# 截止时间已过：不分层级统一使用，{remaining} 渲染为 "overdue by ..."
OVERDUE_TEMPLATES: dict[Channel, str] = {
    _C.SUBJECT: "🚨 OVERDUE: {title} - Immediate Action Required!",
    _C.EMAIL: (
        "<strong>Overdue!</strong> Your task is now <strong>{remaining}</strong>. "
        "Please complete it as soon as possible."
    ),
    _C.SMS: "🚨 OVERDUE: {title} is {remaining}. Take action NOW!",
    _C.CALL: (
        "ALERT! {name}, your task {title} is {remaining}. "
        "Please take action immediately."
    ),
    _C.SLACK: (
        "🚨 *TASK OVERDUE*\n\n@{name}\n\n*{remaining_upper}!*\n\n"
        "📋 *Task:* {title}\n⚡ *Priority:* {priority}\n📅 *Due:* {due}\n\n"
        "<{link}|🔗 TAKE ACTION NOW>"
    ),
}

_EMAIL_SHELL = """\
<div style="font-family: Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #333;">
  <h2 style="margin: 0 0 16px;">{subject}</h2>
  <p>Hi {name},</p>
  <p>{intro}</p>
  <table style="margin: 16px 0; border-collapse: collapse;">
    <tr><td style="padding: 8px 16px 8px 0; font-weight: bold;">Task:</td><td>{title}</td></tr>
    <tr><td style="padding: 8px 16px 8px 0; font-weight: bold;">Priority:</td><td>{priority}</td></tr>
    <tr><td style="padding: 8px 16px 8px 0; font-weight: bold;">Due Date:</td><td>{due}</td></tr>
  </table>
  <p><a href="{link}" style="display: inline-block; padding: 10px 20px; background-color: #4F46E5; \
color: white; text-decoration: none; border-radius: 6px;">View Task</a></p>
  <p style="margin-top: 24px; font-size: 13px; color: #6b7280;">\
Automated notification sent by Chaser Agent System</p>
</div>"""


class RenderedMessage(BaseModel):
    """单个层级渲染后的各渠道文案（空字符串表示跳过该渠道）"""

    subject: str = Field(default="")
    email_html: str = Field(default="")
    sms: str = Field(default="")
    call: str = Field(default="")
    slack: str = Field(default="")
    due_text: str = Field(description="格式化后的截止时间")
    remaining_text: str = Field(description="剩余时间文案")
    task_link: str = Field(description="任务详情链接")


def tier_for_hours_remaining(hours: float) -> EscalationTier:
    """按剩余小时数计算派发时的实际层级"""
    if hours <= 1:
        return EscalationTier.CRITICAL
    if hours <= 4:
        return EscalationTier.URGENT
    if hours <= 12:
        return EscalationTier.REMINDER
    return EscalationTier.UPCOMING


def format_time_remaining(hours: float) -> str:
    """剩余时间文案: 一小时内按分钟，否则按小时（四舍五入）；已过期为 overdue by ..."""
    if hours < 0:
        return f"overdue by {format_time_remaining(-hours)}"
    if hours < 1:
        minutes = math.floor(hours * 60 + 0.5)
        if minutes < 1:
            return "less than a minute"
        return "1 minute" if minutes == 1 else f"{minutes} minutes"
    rounded = math.floor(hours + 0.5)
    return "1 hour" if rounded == 1 else f"{rounded} hours"


def format_due_date(due: datetime) -> str:
    """Monday, January 5, 2026 at 3:00 PM UTC"""
    hour = due.hour % 12 or 12
    meridiem = "AM" if due.hour < 12 else "PM"
    return (
        f"{due:%A}, {due:%B} {due.day}, {due.year} at {hour}:{due:%M} {meridiem} UTC"
    )


def format_priority(priority: str) -> str:
    return priority[:1].upper() + priority[1:]


def task_link(frontend_url: str, task_id: str) -> str:
    return f"{frontend_url.rstrip('/')}/tasks/{task_id}"


def render_message(
    task: Task,
    tier: EscalationTier,
    now: datetime,
    frontend_url: str,
    channels: ChannelSelection | None = None,
) -> RenderedMessage:
    """按层级渲染全部渠道文案

    剩余时间以 now 为基准计算（Planner 传入计划发送时间，
    Dispatcher 传入实际派发时间）。联系方式缺失或渠道被关闭时，
    对应文案留空，由外部 sink 跳过该渠道。

    Args:
        task: 所属任务
        tier: 使用的文案层级
        now: 计算剩余时间的基准时间
        frontend_url: 前端基础 URL
        channels: 渠道选择，None 表示全部开启

    Returns:
        RenderedMessage
    """
    channels = channels or ChannelSelection()
    hours = (task.due_date - now).total_seconds() / 3600
    remaining = format_time_remaining(hours)
    link = task_link(frontend_url, task.task_id)
    values = {
        "title": task.title,
        "name": task.assignee.name or "there",
        "priority": format_priority(task.priority),
        "due": format_due_date(task.due_date),
        "link": link,
        "remaining": remaining,
        "remaining_upper": remaining.upper(),
    }

    overdue = hours < 0

    def template(channel: Channel) -> str:
        if overdue:
            return OVERDUE_TEMPLATES[channel]
        return TEMPLATES[(tier, channel)]

    def fill(channel: Channel) -> str:
        return template(channel).format(**values)

    subject = fill(Channel.SUBJECT)
    email_html = ""
    if channels.email:
        escaped = {k: html.escape(v) for k, v in values.items()}
        email_html = _EMAIL_SHELL.format(
            subject=html.escape(subject),
            intro=template(Channel.EMAIL).format(**escaped),
            **{k: escaped[k] for k in ("name", "title", "priority", "due", "link")},
        )

    assignee = task.assignee
    sms = fill(Channel.SMS) if channels.sms and assignee.phone else ""
    call = (
        fill(Channel.CALL)
        if channels.call and assignee.enable_call and assignee.phone
        else ""
    )
    slack = fill(Channel.SLACK) if channels.slack and assignee.slack_channel else ""

    return RenderedMessage(
        subject=subject,
        email_html=email_html,
        sms=sms,
        call=call,
        slack=slack,
        due_text=values["due"],
        remaining_text=remaining,
        task_link=link,
    )
