"""GraphQL endpoint: queries and mutations over users and volunteering postings.

Resolver functions live in app.services; this module only binds them to the schema,
runs them off the event loop and turns failures into GraphQL errors.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import strawberry
from fastapi import Request
from graphql import GraphQLError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from strawberry.fastapi import BaseContext, GraphQLRouter
from strawberry.types import Info

from app.api.v1.auth import SESSION_USER_KEY, resolve_identity, session_payload
from app.core.database import Store
from app.schemas.auth import Identity, UserPublic
from app.schemas.posting import PUBLIC_FIELD_NAMES, UPDATABLE_FIELDS, PostingRead
from app.services import postings, users
from app.services.errors import InternalError, ResolverError, Unauthorized
from app.services.notifications import Notifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# GraphQL argument name -> posting field
POSTING_ARGUMENTS = {
    public: field for field, public in PUBLIC_FIELD_NAMES.items() if field in UPDATABLE_FIELDS
}


class GraphQLContext(BaseContext):
    """Per-request context: caller identity plus the store and notifier capabilities."""

    def __init__(
        self,
        store: Store,
        notifier: Notifier,
        identity: Identity | None = None,
        auth_error: str | None = None,
    ) -> None:
        super().__init__()
        self.store = store
        self.notifier = notifier
        self.identity = identity
        self.auth_error = auth_error


async def get_context(request: Request) -> GraphQLContext:
    resolved = resolve_identity(request)
    return GraphQLContext(
        store=request.app.state.store,
        notifier=request.app.state.notifier,
        identity=resolved.identity,
        auth_error=resolved.auth_error,
    )


async def _call(info: Info, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking resolver in the threadpool and map its failures to GraphQL errors."""
    try:
        return await run_in_threadpool(fn, *args, **kwargs)
    except ResolverError as e:
        message = e.message
        if isinstance(e, Unauthorized) and info.context.auth_error:
            message = info.context.auth_error
        raise GraphQLError(message, extensions={"code": e.code}) from e
    except SQLAlchemyError as e:
        logger.exception("Store error while resolving %s", info.field_name)
        error = InternalError(cause=e)
        raise GraphQLError(error.message, extensions={"code": error.code}) from e
    except Exception as e:
        logger.exception("Unexpected error while resolving %s", info.field_name)
        error = InternalError(cause=e)
        raise GraphQLError(error.message, extensions={"code": error.code}) from e


def _posting_changes(**arguments: Any) -> dict[str, Any]:
    """Keep only the arguments the client actually sent."""
    return {
        POSTING_ARGUMENTS[name]: value
        for name, value in arguments.items()
        if value is not strawberry.UNSET
    }


@strawberry.type(name="Usuario")
class UsuarioType:
    id: strawberry.ID
    nombre: str
    email: str
    role: str

    @classmethod
    def from_public(cls, user: UserPublic) -> "UsuarioType":
        return cls(id=strawberry.ID(user.id), nombre=user.name, email=user.email, role=user.role)


@strawberry.type(name="Voluntariado")
class VoluntariadoType:
    id: strawberry.ID
    titulo: str
    usuario: str
    fecha: str
    descripcion: str
    tipo: str
    imagen: str | None = None

    @classmethod
    def from_read(cls, posting: PostingRead) -> "VoluntariadoType":
        return cls(
            id=strawberry.ID(posting.id),
            titulo=posting.title,
            usuario=posting.owner_email,
            fecha=posting.date,
            descripcion=posting.description,
            tipo=posting.kind,
            imagen=posting.image,
        )


@strawberry.type(name="AuthPayload")
class AuthPayloadType:
    token: str
    usuario: UsuarioType


@strawberry.type
class Query:
    @strawberry.field(description="All users (administrators only).")
    async def usuarios(self, info: Info) -> list[UsuarioType]:
        ctx = info.context
        result = await _call(info, users.list_users, ctx.store, ctx.identity)
        return [UsuarioType.from_public(u) for u in result]

    @strawberry.field(description="A user by email (administrators, or the user themself).")
    async def usuario_por_email(self, info: Info, email: str) -> UsuarioType | None:
        ctx = info.context
        result = await _call(info, users.get_user_by_email, ctx.store, ctx.identity, email)
        return UsuarioType.from_public(result) if result is not None else None

    @strawberry.field(description="Postings visible to the caller: all for administrators, own otherwise.")
    async def voluntariados(self, info: Info) -> list[VoluntariadoType]:
        ctx = info.context
        result = await _call(info, postings.list_postings, ctx.store, ctx.identity)
        return [VoluntariadoType.from_read(p) for p in result]

    @strawberry.field
    async def voluntariado_por_id(self, info: Info, id: strawberry.ID) -> VoluntariadoType | None:
        ctx = info.context
        result = await _call(
            info, postings.get_posting_by_id, ctx.store, ctx.identity, ctx.notifier, str(id)
        )
        return VoluntariadoType.from_read(result) if result is not None else None


@strawberry.type
class Mutation:
    @strawberry.mutation(description="Register a user. The role is honored only for administrator callers.")
    async def crear_usuario(
        self,
        info: Info,
        nombre: str,
        email: str,
        password: str,
        role: str | None = None,
    ) -> UsuarioType:
        ctx = info.context
        result = await _call(
            info,
            users.create_user,
            ctx.store,
            ctx.identity,
            name=nombre,
            email=email,
            password=password,
            role=role,
        )
        return UsuarioType.from_public(result)

    @strawberry.mutation(description="Delete a user by email; false when no user had that email.")
    async def borrar_usuario_por_email(self, info: Info, email: str) -> bool:
        ctx = info.context
        return await _call(info, users.delete_user_by_email, ctx.store, ctx.identity, email)

    @strawberry.mutation(description="Delete the user at a position of the full user listing (not atomic).")
    async def borrar_usuario_por_indice(self, info: Info, indice: int) -> bool:
        ctx = info.context
        return await _call(info, users.delete_user_by_index, ctx.store, ctx.identity, indice)

    @strawberry.mutation
    async def login(self, info: Info, email: str, password: str) -> AuthPayloadType:
        ctx = info.context
        result = await _call(info, users.login, ctx.store, email, password)
        request = ctx.request
        if request is not None and "session" in request.scope:
            identity = Identity(
                id=result.user.id,
                email=result.user.email,
                name=result.user.name,
                role=result.user.role,
            )
            request.session[SESSION_USER_KEY] = session_payload(identity)
        return AuthPayloadType(token=result.token, usuario=UsuarioType.from_public(result.user))

    @strawberry.mutation(description="Create a posting owned by the caller; usuario is accepted but ignored.")
    async def crear_voluntariado(
        self,
        info: Info,
        titulo: str,
        fecha: str,
        descripcion: str,
        tipo: str,
        imagen: str | None = None,
        usuario: str | None = None,
    ) -> VoluntariadoType:
        ctx = info.context
        result = await _call(
            info,
            postings.create_posting,
            ctx.store,
            ctx.identity,
            ctx.notifier,
            title=titulo,
            date=fecha,
            description=descripcion,
            kind=tipo,
            image=imagen,
            owner_email=usuario,
        )
        return VoluntariadoType.from_read(result)

    @strawberry.mutation
    async def actualizar_voluntariado(
        self,
        info: Info,
        id: strawberry.ID,
        titulo: str | None = strawberry.UNSET,
        fecha: str | None = strawberry.UNSET,
        descripcion: str | None = strawberry.UNSET,
        tipo: str | None = strawberry.UNSET,
        imagen: str | None = strawberry.UNSET,
    ) -> VoluntariadoType:
        ctx = info.context
        changes = _posting_changes(
            titulo=titulo, fecha=fecha, descripcion=descripcion, tipo=tipo, imagen=imagen
        )
        result = await _call(
            info, postings.update_posting, ctx.store, ctx.identity, ctx.notifier, str(id), changes
        )
        return VoluntariadoType.from_read(result)

    @strawberry.mutation(description="Update the posting at a position of the caller's listing (not atomic).")
    async def actualizar_voluntariado_por_indice(
        self,
        info: Info,
        indice: int,
        titulo: str | None = strawberry.UNSET,
        fecha: str | None = strawberry.UNSET,
        descripcion: str | None = strawberry.UNSET,
        tipo: str | None = strawberry.UNSET,
        imagen: str | None = strawberry.UNSET,
    ) -> VoluntariadoType:
        ctx = info.context
        changes = _posting_changes(
            titulo=titulo, fecha=fecha, descripcion=descripcion, tipo=tipo, imagen=imagen
        )
        result = await _call(
            info,
            postings.update_posting_by_index,
            ctx.store,
            ctx.identity,
            ctx.notifier,
            indice,
            changes,
        )
        return VoluntariadoType.from_read(result)

    @strawberry.mutation
    async def eliminar_voluntariado(self, info: Info, id: strawberry.ID) -> bool:
        ctx = info.context
        return await _call(
            info, postings.delete_posting, ctx.store, ctx.identity, ctx.notifier, str(id)
        )

    @strawberry.mutation(description="Delete the posting at a position of the caller's listing (not atomic).")
    async def eliminar_voluntariado_por_indice(self, info: Info, indice: int) -> bool:
        ctx = info.context
        return await _call(
            info, postings.delete_posting_by_index, ctx.store, ctx.identity, ctx.notifier, indice
        )


def _is_expected(error: GraphQLError) -> bool:
    """Resolver failures are part of the API; only unexpected errors get logged with traceback."""
    code = (error.extensions or {}).get("code")
    return code is not None and code != InternalError.code


class VoluntariadoSchema(strawberry.Schema):
    def process_errors(self, errors: list[GraphQLError], execution_context: Any = None) -> None:
        unexpected = [e for e in errors if not _is_expected(e)]
        if len(unexpected) != len(errors):
            logger.debug("Resolver errors", extra={"count": len(errors) - len(unexpected)})
        if unexpected:
            super().process_errors(unexpected, execution_context)


schema = VoluntariadoSchema(query=Query, mutation=Mutation)


def create_graphql_router(graphql_ide: str | None = None) -> GraphQLRouter:
    return GraphQLRouter(schema, context_getter=get_context, graphql_ide=graphql_ide)
