"""Locale negotiation and translated user-facing messages."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from src.core.config import get_settings

LOCALE_HEADER = "x-locale"

MESSAGES: dict[str, dict[str, str]] = {
    "es": {
        # Generic
        "errors.unauthenticated": "Debes iniciar sesión para continuar",
        "errors.unauthorized": "No tienes permisos para realizar esta acción",
        "errors.validation": "Los datos enviados no son válidos",
        "errors.internal": "Ocurrió un error inesperado. Inténtalo de nuevo más tarde",
        "errors.rate_limited": "Demasiadas solicitudes. Espera un momento e inténtalo de nuevo",
        "errors.request_too_large": "La solicitud excede el tamaño máximo permitido",
        "errors.not_found": "Recurso no encontrado",
        "errors.expired": "El recurso ha expirado",
        "errors.invalid_state": "La operación no es válida en el estado actual",
        "errors.conflict": "El recurso ya existe",
        "common.ok": "Operación realizada correctamente",
        # Organizations and roles
        "organizations.not_found": "Organización no encontrada",
        "organizations.not_member": "No eres miembro de esta organización",
        "organizations.admin_required": "Solo un administrador puede realizar esta acción",
        "organizations.has_members": "No se puede eliminar una organización que todavía tiene miembros",
        "organizations.create_failed": "No se pudo crear la organización",
        "organizations.created": "Organización creada correctamente",
        "organizations.deleted": "Organización eliminada correctamente",
        "roles.not_found": "El rol seleccionado no existe para esta organización",
        "members.not_found": "Miembro no encontrado en esta organización",
        "members.cannot_remove_self": "No puedes eliminarte a ti mismo de la organización",
        "members.last_admin": "No se puede eliminar al último administrador de la organización",
        "members.removed": "Miembro eliminado correctamente",
        # Personal invitations
        "invitations.not_found": "Invitación no encontrada",
        "invitations.expired": "Esta invitación ha expirado",
        "invitations.not_pending": "Esta invitación ya no está disponible",
        "invitations.email_mismatch": "Esta invitación es para otro correo electrónico",
        "invitations.duplicate": "Ya existe una invitación pendiente para este correo electrónico",
        "invitations.email_failed": "No se pudo enviar el correo de invitación",
        "invitations.create_failed": "No se pudo crear la invitación",
        "invitations.accept_failed": "No se pudo aceptar la invitación",
        "invitations.already_accepted": "No se puede eliminar una invitación que ya fue aceptada",
        "invitations.not_pending_approval": "La invitación no está pendiente de aprobación",
        "invitations.already_member": "Ya eres miembro de esta organización",
        "invitations.created": "Invitación enviada correctamente",
        "invitations.valid": "Invitación válida",
        "invitations.accepted": "Invitación aceptada correctamente",
        "invitations.deleted": "Invitación eliminada correctamente",
        "invitations.approved": "Invitación aprobada correctamente",
        "invitations.rejected": "Invitación rechazada correctamente",
        # General invite links
        "invite_links.not_found": "Enlace de invitación no encontrado",
        "invite_links.expired": "Este enlace de invitación ha expirado",
        "invite_links.already_requested": "Ya tienes una solicitud pendiente para esta organización",
        "invite_links.profile_incomplete": "Completa tu perfil antes de unirte a la organización",
        "invite_links.create_failed": "No se pudo crear el enlace de invitación",
        "invite_links.created": "Enlace de invitación creado correctamente",
        "invite_links.deleted": "Enlace de invitación eliminado correctamente",
        "invite_links.valid": "Enlace de invitación válido",
        "invite_links.joined": "Te has unido a la organización correctamente",
        "invite_links.request_pending": "Tu solicitud fue enviada y está pendiente de aprobación por un administrador",
        # Accounts and profiles
        "accounts.email_registered": "Este correo ya está registrado. Verifica tu contraseña",
        "accounts.signup_failed": "No se pudo crear la cuenta",
        "accounts.profile_failed": "No se pudo crear el perfil del usuario",
        "profiles.not_found": "Perfil no encontrado",
        "profiles.main_organization_updated": "Organización principal actualizada",
        # Emails
        "email.invitation.subject": "Te invitaron a unirte a {organization_name}",
        "email.invitation.heading": "¡Tienes una invitación!",
        "email.invitation.body": "{inviter_name} te invitó a unirte a {organization_name} como {role_name}.",
        "email.invitation.cta": "Aceptar invitación",
        "email.invitation.expires": "Esta invitación expira en {days} días. Si no la esperabas, puedes ignorar este correo.",
        "email.approval.subject": "Tu solicitud para unirte a {organization_name} fue aprobada",
        "email.approval.heading": "¡Bienvenido!",
        "email.approval.body": "Tu solicitud para unirte a {organization_name} fue aprobada. Ya puedes ingresar.",
        "email.approval.cta": "Ir a la aplicación",
        "email.fallback_link": "Si el botón no funciona, copia y pega este enlace:",
    },
    "pt": {
        "errors.unauthenticated": "Você precisa entrar para continuar",
        "errors.unauthorized": "Você não tem permissão para realizar esta ação",
        "errors.validation": "Os dados enviados não são válidos",
        "errors.internal": "Ocorreu um erro inesperado. Tente novamente mais tarde",
        "errors.rate_limited": "Muitas solicitações. Aguarde um momento e tente novamente",
        "errors.request_too_large": "A solicitação excede o tamanho máximo permitido",
        "errors.not_found": "Recurso não encontrado",
        "errors.expired": "O recurso expirou",
        "errors.invalid_state": "A operação não é válida no estado atual",
        "errors.conflict": "O recurso já existe",
        "common.ok": "Operação realizada com sucesso",
        "organizations.not_found": "Organização não encontrada",
        "organizations.not_member": "Você não é membro desta organização",
        "organizations.admin_required": "Somente um administrador pode realizar esta ação",
        "organizations.has_members": "Não é possível excluir uma organização que ainda tem membros",
        "organizations.create_failed": "Não foi possível criar a organização",
        "organizations.created": "Organização criada com sucesso",
        "organizations.deleted": "Organização excluída com sucesso",
        "roles.not_found": "A função selecionada não existe para esta organização",
        "members.not_found": "Membro não encontrado nesta organização",
        "members.cannot_remove_self": "Você não pode remover a si mesmo da organização",
        "members.last_admin": "Não é possível remover o último administrador da organização",
        "members.removed": "Membro removido com sucesso",
        "invitations.not_found": "Convite não encontrado",
        "invitations.expired": "Este convite expirou",
        "invitations.not_pending": "Este convite não está mais disponível",
        "invitations.email_mismatch": "Este convite é para outro e-mail",
        "invitations.duplicate": "Já existe um convite pendente para este e-mail",
        "invitations.email_failed": "Não foi possível enviar o e-mail de convite",
        "invitations.create_failed": "Não foi possível criar o convite",
        "invitations.accept_failed": "Não foi possível aceitar o convite",
        "invitations.already_accepted": "Não é possível excluir um convite que já foi aceito",
        "invitations.not_pending_approval": "O convite não está aguardando aprovação",
        "invitations.already_member": "Você já é membro desta organização",
        "invitations.created": "Convite enviado com sucesso",
        "invitations.valid": "Convite válido",
        "invitations.accepted": "Convite aceito com sucesso",
        "invitations.deleted": "Convite excluído com sucesso",
        "invitations.approved": "Convite aprovado com sucesso",
        "invitations.rejected": "Convite rejeitado com sucesso",
        "invite_links.not_found": "Link de convite não encontrado",
        "invite_links.expired": "Este link de convite expirou",
        "invite_links.already_requested": "Você já tem uma solicitação pendente para esta organização",
        "invite_links.profile_incomplete": "Complete seu perfil antes de entrar na organização",
        "invite_links.create_failed": "Não foi possível criar o link de convite",
        "invite_links.created": "Link de convite criado com sucesso",
        "invite_links.deleted": "Link de convite excluído com sucesso",
        "invite_links.valid": "Link de convite válido",
        "invite_links.joined": "Você entrou na organização com sucesso",
        "invite_links.request_pending": "Sua solicitação foi enviada e aguarda a aprovação de um administrador",
        "accounts.email_registered": "Este e-mail já está cadastrado. Verifique sua senha",
        "accounts.signup_failed": "Não foi possível criar a conta",
        "accounts.profile_failed": "Não foi possível criar o perfil do usuário",
        "profiles.not_found": "Perfil não encontrado",
        "profiles.main_organization_updated": "Organização principal atualizada",
        "email.invitation.subject": "Você foi convidado para entrar em {organization_name}",
        "email.invitation.heading": "Você tem um convite!",
        "email.invitation.body": "{inviter_name} convidou você para entrar em {organization_name} como {role_name}.",
        "email.invitation.cta": "Aceitar convite",
        "email.invitation.expires": "Este convite expira em {days} dias. Se você não o esperava, pode ignorar este e-mail.",
        "email.approval.subject": "Sua solicitação para entrar em {organization_name} foi aprovada",
        "email.approval.heading": "Bem-vindo!",
        "email.approval.body": "Sua solicitação para entrar em {organization_name} foi aprovada. Você já pode acessar.",
        "email.approval.cta": "Ir para o aplicativo",
        "email.fallback_link": "Se o botão não funcionar, copie e cole este link:",
    },
    "en": {
        "errors.unauthenticated": "You must be signed in to continue",
        "errors.unauthorized": "You do not have permission to perform this action",
        "errors.validation": "The submitted data is not valid",
        "errors.internal": "An unexpected error occurred. Please try again later",
        "errors.rate_limited": "Too many requests. Please wait a moment and try again",
        "errors.request_too_large": "The request exceeds the maximum allowed size",
        "errors.not_found": "Resource not found",
        "errors.expired": "The resource has expired",
        "errors.invalid_state": "The operation is not valid in the current state",
        "errors.conflict": "The resource already exists",
        "common.ok": "Request completed successfully",
        "organizations.not_found": "Organization not found",
        "organizations.not_member": "You are not a member of this organization",
        "organizations.admin_required": "Only an administrator can perform this action",
        "organizations.has_members": "An organization that still has members cannot be deleted",
        "organizations.create_failed": "The organization could not be created",
        "organizations.created": "Organization created successfully",
        "organizations.deleted": "Organization deleted successfully",
        "roles.not_found": "The selected role does not exist for this organization",
        "members.not_found": "Member not found in this organization",
        "members.cannot_remove_self": "You cannot remove yourself from the organization",
        "members.last_admin": "The last administrator of an organization cannot be removed",
        "members.removed": "Member removed successfully",
        "invitations.not_found": "Invitation not found",
        "invitations.expired": "This invitation has expired",
        "invitations.not_pending": "This invitation is no longer available",
        "invitations.email_mismatch": "This invitation was sent to a different email address",
        "invitations.duplicate": "A pending invitation already exists for this email",
        "invitations.email_failed": "The invitation email could not be sent",
        "invitations.create_failed": "The invitation could not be created",
        "invitations.accept_failed": "The invitation could not be accepted",
        "invitations.already_accepted": "An accepted invitation cannot be deleted",
        "invitations.not_pending_approval": "The invitation is not awaiting approval",
        "invitations.already_member": "You are already a member of this organization",
        "invitations.created": "Invitation sent successfully",
        "invitations.valid": "Invitation is valid",
        "invitations.accepted": "Invitation accepted successfully",
        "invitations.deleted": "Invitation deleted successfully",
        "invitations.approved": "Invitation approved successfully",
        "invitations.rejected": "Invitation rejected successfully",
        "invite_links.not_found": "Invite link not found",
        "invite_links.expired": "This invite link has expired",
        "invite_links.already_requested": "You already have a pending request for this organization",
        "invite_links.profile_incomplete": "Complete your profile before joining the organization",
        "invite_links.create_failed": "The invite link could not be created",
        "invite_links.created": "Invite link created successfully",
        "invite_links.deleted": "Invite link deleted successfully",
        "invite_links.valid": "Invite link is valid",
        "invite_links.joined": "You joined the organization successfully",
        "invite_links.request_pending": "Your request was sent and is awaiting approval by an administrator",
        "accounts.email_registered": "This email is already registered. Check your password",
        "accounts.signup_failed": "The account could not be created",
        "accounts.profile_failed": "The user profile could not be created",
        "profiles.not_found": "Profile not found",
        "profiles.main_organization_updated": "Main organization updated",
        "email.invitation.subject": "You have been invited to join {organization_name}",
        "email.invitation.heading": "You're invited!",
        "email.invitation.body": "{inviter_name} invited you to join {organization_name} as {role_name}.",
        "email.invitation.cta": "Accept invitation",
        "email.invitation.expires": "This invitation expires in {days} days. If you weren't expecting it, you can ignore this email.",
        "email.approval.subject": "Your request to join {organization_name} was approved",
        "email.approval.heading": "Welcome!",
        "email.approval.body": "Your request to join {organization_name} was approved. You can sign in now.",
        "email.approval.cta": "Open the app",
        "email.fallback_link": "If the button doesn't work, copy and paste this link:",
    },
}


def _supported(locale: str | None) -> str | None:
    """Return the supported locale matching a tag like 'pt-BR', if any."""
    if not locale:
        return None
    primary = locale.strip().lower().replace("_", "-").split("-")[0]
    return primary if primary in get_settings().supported_locales_list else None


def _from_accept_language(header: str) -> str | None:
    """Pick the highest-weighted supported locale from an Accept-Language header."""
    candidates: list[tuple[float, int, str]] = []
    for position, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        weight = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                weight = float(params[2:])
            except ValueError:
                weight = 0.0
        candidates.append((-weight, position, tag))

    for _, _, tag in sorted(candidates):
        locale = _supported(tag)
        if locale:
            return locale
    return None


def negotiate_locale(headers: Mapping[str, str]) -> str:
    """Work out the caller's locale from request headers.

    Checks, in order: the explicit locale header set by the frontend, the
    first path segment of the Referer (``/pt/invitations/...``), and
    Accept-Language. Falls back to the configured default.

    Args:
        headers: Request headers (case-insensitive mapping).

    Returns:
        str: A supported locale code.
    """
    explicit = _supported(headers.get(LOCALE_HEADER))
    if explicit:
        return explicit

    referer = headers.get("referer")
    if referer:
        segments = [s for s in urlparse(referer).path.split("/") if s]
        if segments:
            from_path = _supported(segments[0]) if len(segments[0]) == 2 else None
            if from_path:
                return from_path

    accept_language = headers.get("accept-language")
    if accept_language:
        from_header = _from_accept_language(accept_language)
        if from_header:
            return from_header

    return get_settings().default_locale


def translate(key: str, locale: str | None = None, **params: Any) -> str:
    """Translate a message key, falling back to the default locale, then the key.

    Args:
        key: Dotted message key, e.g. ``invitations.expired``.
        locale: Target locale. Defaults to the configured default.
        **params: Values interpolated into the message.

    Returns:
        str: The localized message.
    """
    default_locale = get_settings().default_locale
    catalogue = MESSAGES.get(locale or default_locale) or MESSAGES[default_locale]
    template = catalogue.get(key) or MESSAGES[default_locale].get(key) or key
    if not params:
        return template
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
