# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""
Metadata Resolver

Resolves human-supplied workspace/project/section/custom-field/option names
into provider IDs for create and update calls. Every lookup is an exact,
case-insensitive match:

    0 matches  -> NotFoundError listing candidates (or suggestions)
    1 match    -> resolved
    >1 matches -> AmbiguousError listing only the tied candidates

Metadata listings are read through the short-lived MetadataCache; per-call
results are never kept beyond the call.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from pm_core.cache.metadata_cache import MetadataCache
from pm_core.errors import (
    AmbiguousError, MissingProjectContextError, NotFoundError, ResolutionError,
)
from pm_core.providers.base import BasePMProvider, ProviderCapability, run_provider_operation
from pm_core.providers.models import (
    CreateTaskInput, CustomFieldInput, CustomFieldSetting, PlacementRef,
    Project, Section, UpdateTaskInput, Workspace,
)
from .custom_fields import (
    CustomFieldContext, ResolvedCustomFieldMutation, build_mutation,
    merge_custom_field_contexts, requested_custom_fields, resolve_field_context,
    to_custom_field_payload,
)
from .matching import containing_suggestions, dedupe_by_id, exact_name_matches

logger = logging.getLogger(__name__)

PROJECTS = "projects"
SECTIONS = "sections"
CUSTOM_FIELDS = "custom_fields"


@dataclass
class ResolvedWorkspace:
    id: str
    name: str


@dataclass
class ResolvedProject:
    id: str
    name: str
    workspace: ResolvedWorkspace


@dataclass
class ResolvedSection:
    id: str
    name: str


@dataclass
class ResolvedPlacement:
    workspace: ResolvedWorkspace
    project: Optional[ResolvedProject] = None
    section: Optional[ResolvedSection] = None


@dataclass
class ResolvedCreate:
    """Create input with IDs filled in, plus the custom field mutations applied"""
    task_input: CreateTaskInput
    placement: ResolvedPlacement
    mutations: List[ResolvedCustomFieldMutation] = field(default_factory=list)


def _format_workspaces(workspaces: Sequence[Workspace]) -> List[str]:
    return [f"{workspace.name} ({workspace.id})" for workspace in workspaces]


class MetadataResolver:
    """Name -> ID resolution against provider metadata"""

    def __init__(self, metadata_cache: MetadataCache):
        self.metadata_cache = metadata_cache

    # ==================== Provider Calls ====================

    async def _list_projects(
        self, provider: BasePMProvider, workspace: ResolvedWorkspace, refresh: bool
    ) -> List[Project]:
        async def load():
            return await run_provider_operation(
                provider,
                f"list projects in workspace {workspace.name}",
                lambda: provider.list_projects(workspace.id, refresh=refresh),
            )

        return await self.metadata_cache.get_or_load(provider.name, PROJECTS, workspace.id, load, refresh)

    async def _list_sections(self, provider: BasePMProvider, project_id: str, refresh: bool) -> List[Section]:
        async def load():
            return await run_provider_operation(
                provider,
                "resolve project sections",
                lambda: provider.list_sections(project_id, refresh=refresh),
            )

        return await self.metadata_cache.get_or_load(provider.name, SECTIONS, project_id, load, refresh)

    async def _list_custom_field_settings(
        self, provider: BasePMProvider, project: PlacementRef, refresh: bool
    ) -> List[CustomFieldSetting]:
        async def load():
            return await run_provider_operation(
                provider,
                f"resolve project custom fields ({project.name})",
                lambda: provider.list_custom_field_settings(project.id, refresh=refresh),
            )

        return await self.metadata_cache.get_or_load(provider.name, CUSTOM_FIELDS, project.id, load, refresh)

    async def _list_workspaces(self, provider: BasePMProvider) -> List[Workspace]:
        provider.require(ProviderCapability.WORKSPACES, "workspaces")
        return await run_provider_operation(provider, "list workspaces", provider.list_workspaces)

    # ==================== Workspace ====================

    async def resolve_workspace(
        self,
        provider: BasePMProvider,
        workspace_id: Optional[str] = None,
        workspace_name: Optional[str] = None,
    ) -> ResolvedWorkspace:
        """Resolve by ID, then by name, else fall back to the default workspace"""
        workspaces = await self._list_workspaces(provider)
        if not workspaces:
            raise ResolutionError(f"No {provider.display_name or provider.name.value} workspaces available for this account")

        if workspace_id:
            for workspace in workspaces:
                if workspace.id == workspace_id:
                    return ResolvedWorkspace(workspace.id, workspace.name)
            raise NotFoundError("workspace", workspace_id, candidates=_format_workspaces(workspaces))

        if workspace_name:
            matches = exact_name_matches(workspaces, workspace_name, lambda w: w.name)
            if len(matches) == 1:
                return ResolvedWorkspace(matches[0].id, matches[0].name)
            if len(matches) > 1:
                raise AmbiguousError(
                    "workspace", workspace_name, _format_workspaces(matches), hint="Use --workspace ID."
                )
            raise NotFoundError("workspace", workspace_name, candidates=_format_workspaces(workspaces))

        default = await run_provider_operation(provider, "load default workspace", provider.get_default_workspace)
        chosen = default or workspaces[0]
        return ResolvedWorkspace(chosen.id, chosen.name)

    # ==================== Project ====================

    async def load_projects(
        self, provider: BasePMProvider, workspaces: Sequence[ResolvedWorkspace], refresh: bool = False
    ) -> List[ResolvedProject]:
        """List projects of every workspace concurrently, in workspace order"""
        listings = await asyncio.gather(
            *(self._list_projects(provider, workspace, refresh) for workspace in workspaces)
        )

        resolved = []
        for workspace, projects in zip(workspaces, listings):
            for project in projects:
                owner = workspace
                if project.workspace and project.workspace.id and project.workspace.name:
                    owner = ResolvedWorkspace(project.workspace.id, project.workspace.name)
                resolved.append(ResolvedProject(project.id, project.name, owner))
        return resolved

    async def _project_scope(
        self, provider: BasePMProvider, workspace: ResolvedWorkspace, workspace_explicit: bool
    ) -> List[ResolvedWorkspace]:
        if workspace_explicit:
            return [workspace]
        return [ResolvedWorkspace(w.id, w.name) for w in await self._list_workspaces(provider)]

    async def resolve_project(
        self,
        provider: BasePMProvider,
        workspace: ResolvedWorkspace,
        project_id: Optional[str] = None,
        project_name: Optional[str] = None,
        workspace_explicit: bool = False,
        refresh: bool = False,
    ) -> Optional[ResolvedProject]:
        """
        Resolve a project by name (strict) or by ID (best effort).

        The search spans every workspace unless one was given explicitly.
        """
        if project_name:
            scope = await self._project_scope(provider, workspace, workspace_explicit)
            projects = await self.load_projects(provider, scope, refresh)
            matches = exact_name_matches(projects, project_name, lambda p: p.name)

            if len(matches) == 1:
                return matches[0]

            if len(matches) > 1:
                raise AmbiguousError(
                    "project",
                    project_name,
                    [f"{p.id} ({p.workspace.name})" for p in matches],
                    hint="Use --project ID or --workspace.",
                )

            suggestions = containing_suggestions(projects, project_name, lambda p: p.name)
            raise NotFoundError(
                "project",
                project_name,
                candidates=[f"{p.name} ({p.id}, {p.workspace.name})" for p in projects],
                suggestions=[f"{p.name} ({p.id}, {p.workspace.name})" for p in suggestions],
            )

        if project_id:
            try:
                scope = await self._project_scope(provider, workspace, workspace_explicit)
                projects = await self.load_projects(provider, scope, refresh)
                for project in projects:
                    if project.id == project_id:
                        return project
            except Exception as e:
                logger.debug(f"Project metadata unavailable for {project_id}, using ID as name: {e}")

            return ResolvedProject(project_id, project_id, workspace)

        return None

    # ==================== Section ====================

    async def resolve_section(
        self,
        provider: BasePMProvider,
        project: Optional[ResolvedProject],
        section_id: Optional[str] = None,
        section_name: Optional[str] = None,
        refresh: bool = False,
    ) -> Optional[ResolvedSection]:
        if not section_id and not section_name:
            return None

        if project is None:
            raise MissingProjectContextError("--section requires --project")

        sections = await self._list_sections(provider, project.id, refresh)
        scope = f"project {project.id}"

        if section_name:
            matches = exact_name_matches(sections, section_name, lambda s: s.name)
            if len(matches) == 1:
                return ResolvedSection(matches[0].id, matches[0].name)
            if len(matches) > 1:
                raise AmbiguousError(
                    "section",
                    section_name,
                    [f"{s.id} ({s.name})" for s in matches],
                    hint="Use --section ID.",
                    scope=scope,
                )
            raise NotFoundError(
                "section",
                section_name,
                candidates=[f"{s.name} ({s.id})" for s in sections],
                scope=scope,
            )

        for section in sections:
            if section.id == section_id:
                return ResolvedSection(section.id, section.name)
        return ResolvedSection(section_id, section_id)

    # ==================== Placement ====================

    async def resolve_placement(self, provider: BasePMProvider, task_input: CreateTaskInput) -> ResolvedPlacement:
        """workspace -> project -> section"""
        workspace = await self.resolve_workspace(provider, task_input.workspace_id, task_input.workspace_name)
        project = await self.resolve_project(
            provider,
            workspace,
            project_id=task_input.project_id,
            project_name=task_input.project_name,
            workspace_explicit=bool(task_input.workspace_id or task_input.workspace_name),
            refresh=task_input.refresh,
        )
        section = await self.resolve_section(
            provider,
            project,
            section_id=task_input.section_id,
            section_name=task_input.section_name,
            refresh=task_input.refresh,
        )
        return ResolvedPlacement(workspace=workspace, project=project, section=section)

    # ==================== Custom Fields ====================

    async def load_custom_field_contexts(
        self, provider: BasePMProvider, projects: Sequence[PlacementRef], refresh: bool = False
    ) -> List[CustomFieldContext]:
        """Load every scoped project's field settings concurrently and merge them"""
        listings = await asyncio.gather(
            *(self._list_custom_field_settings(provider, project, refresh) for project in projects)
        )
        return merge_custom_field_contexts(list(zip(projects, listings)))

    async def resolve_custom_fields(
        self,
        provider: BasePMProvider,
        inputs: Sequence[CustomFieldInput],
        projects: Sequence[PlacementRef],
        refresh: bool = False,
        missing_project_message: str = "--field requires --project",
    ) -> List[ResolvedCustomFieldMutation]:
        if not inputs:
            return []

        if not projects:
            raise MissingProjectContextError(missing_project_message)

        contexts = await self.load_custom_field_contexts(provider, projects, refresh)
        if not contexts:
            scoped = ", ".join(project.id for project in projects)
            raise NotFoundError(
                "custom field",
                ", ".join(i.field for i in inputs),
                message=f"No custom fields found in scoped project metadata ({scoped}).",
            )

        return [build_mutation(resolve_field_context(i.field, contexts), i.values) for i in inputs]

    async def resolve_custom_fields_for_update(
        self, provider: BasePMProvider, external_id: str, updates: UpdateTaskInput
    ) -> List[ResolvedCustomFieldMutation]:
        """
        Scope field resolution to the explicit project if given, otherwise to
        the task's own memberships (then its plain project list).
        """
        if not updates.custom_fields:
            return []

        if updates.project_id or updates.project_name:
            workspace = await self.resolve_workspace(provider, updates.workspace_id, updates.workspace_name)
            project = await self.resolve_project(
                provider,
                workspace,
                project_id=updates.project_id,
                project_name=updates.project_name,
                workspace_explicit=bool(updates.workspace_id or updates.workspace_name),
                refresh=updates.refresh,
            )
            return await self.resolve_custom_fields(
                provider,
                updates.custom_fields,
                [PlacementRef(project.id, project.name)],
                updates.refresh,
                "--field requires a resolvable project context",
            )

        context = await run_provider_operation(
            provider,
            "load task for custom field resolution",
            lambda: provider.get_task_project_context(external_id),
        )
        if context is None:
            raise NotFoundError("task", external_id, message=f"Task not found: {external_id}")

        candidates = [p for p in list(context.memberships) + list(context.projects) if p.id and p.name]
        projects = dedupe_by_id(candidates, lambda p: p.id)
        if not projects:
            raise MissingProjectContextError(
                "Cannot resolve --field updates: task has no project memberships. Pass --project explicitly."
            )

        return await self.resolve_custom_fields(provider, updates.custom_fields, projects, updates.refresh)

    # ==================== Create / Update ====================

    async def resolve_create(self, provider: BasePMProvider, task_input: CreateTaskInput) -> ResolvedCreate:
        """Resolve placement and custom fields of a create call"""
        placement = await self.resolve_placement(provider, task_input)
        project = placement.project

        field_inputs = requested_custom_fields(task_input.custom_fields, task_input.difficulty)
        scope = [PlacementRef(project.id, project.name)] if project else []
        mutations = await self.resolve_custom_fields(provider, field_inputs, scope, task_input.refresh)

        resolved_input = replace(
            task_input,
            workspace_id=project.workspace.id if project else placement.workspace.id,
            workspace_name=project.workspace.name if project else placement.workspace.name,
            project_id=project.id if project else None,
            project_name=project.name if project else None,
            section_id=placement.section.id if placement.section else None,
            section_name=placement.section.name if placement.section else None,
            custom_field_payload=to_custom_field_payload(mutations),
        )
        return ResolvedCreate(task_input=resolved_input, placement=placement, mutations=mutations)

    async def resolve_update(
        self, provider: BasePMProvider, external_id: str, updates: UpdateTaskInput
    ) -> Tuple[UpdateTaskInput, List[ResolvedCustomFieldMutation]]:
        mutations = await self.resolve_custom_fields_for_update(provider, external_id, updates)
        if not mutations:
            return updates, []
        return replace(updates, custom_field_payload=to_custom_field_payload(mutations)), mutations
