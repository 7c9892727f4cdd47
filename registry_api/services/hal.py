# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.
"""

from dataclasses import asdict
from typing import Dict, List, Any, Iterable, Optional
from urllib.parse import urlencode

from ..domain.authorization import registration_actions
from ..domain.status import present_status
from ..models.entities import Document, Profile, RegistrationRecord, SessionContext
from ..models.responses import HalLink, RegistrationStats


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        return HalLink(
            href=f"{self.base_url}/{path.lstrip('/')}",
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        return self.build_link(
            f"{resource_path}/{action}",
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Dict[str, Any]]:
    return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}


class AffordanceLinkBuilder:
    """Builds the links a session may follow from a registration."""

    ACTION_TITLES = {
        "review": "Start Review",
        "approve": "Approve",
        "reject": "Reject",
    }

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_registration_affordances(
        self,
        record: RegistrationRecord,
        session: SessionContext
    ) -> Dict[str, HalLink]:
        record_path = f"/api/registrations/{record.id}"
        admin_path = f"/api/admin/registrations/{record.id}"

        links = {"self": self.link_builder.build_link(record_path, title="Self")}
        for action in registration_actions(session, record):
            if action == "documents":
                links["documents"] = self.link_builder.build_link(f"{record_path}/documents", title="Documents")
            elif action == "certificate":
                links["certificate"] = self.link_builder.build_link(
                    f"{record_path}/certificate",
                    title="Download Certificate"
                )
            else:
                links[action] = self.link_builder.build_action_link(
                    admin_path, action, title=self.ACTION_TITLES[action]
                )
        return links


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def format_registration(self, record: RegistrationRecord, session: SessionContext) -> Dict[str, Any]:
        """Format a registration with its status display and affordances."""
        response = record.model_dump(mode="json")
        response["status_display"] = asdict(present_status(record.status))
        response["_links"] = _dump_links(
            self.affordance_builder.build_registration_affordances(record, session)
        )
        return response

    def format_registration_collection(
        self,
        records: Iterable[RegistrationRecord],
        session: SessionContext,
        collection_path: str,
        search: Optional[str] = None,
        stats: Optional[RegistrationStats] = None
    ) -> Dict[str, Any]:
        """Format a list of registrations with HAL links."""
        items = [self.format_registration(record, session) for record in records]

        self_path = collection_path
        if search:
            self_path = f"{collection_path}?{urlencode({'search': search})}"

        links = {"self": self.link_builder.build_link(self_path, title="Self")}
        if session.is_admin:
            links["search"] = self.link_builder.build_link(
                f"{collection_path}{{?search}}",
                title="Search by name or place",
                templated=True
            )
            links["stats"] = self.link_builder.build_link("/api/admin/stats", title="Counters")
        else:
            links["create"] = self.link_builder.build_link(
                "/api/registrations",
                method="POST",
                content_type="application/json",
                title="Submit Registration"
            )

        response = {
            "total": len(items),
            "_links": _dump_links(links),
            "_embedded": {"registrations": items}
        }
        if stats is not None:
            response["stats"] = stats.model_dump()
        return response

    def format_document(self, document: Document) -> Dict[str, Any]:
        response = document.model_dump(mode="json")
        response["_links"] = _dump_links({
            "registration": self.link_builder.build_link(
                f"/api/registrations/{document.registration_id}",
                title="Registration"
            )
        })
        return response

    def format_document_collection(self, registration_id: str, documents: List[Document]) -> Dict[str, Any]:
        path = f"/api/registrations/{registration_id}/documents"
        return {
            "total": len(documents),
            "_links": _dump_links({
                "self": self.link_builder.build_link(path, title="Self"),
                "attach": self.link_builder.build_link(
                    path, method="POST", content_type="application/json", title="Attach Document"
                )
            }),
            "_embedded": {"documents": [self.format_document(document) for document in documents]}
        }

    def format_certificate(self, certificate: Dict[str, Any]) -> Dict[str, Any]:
        response = dict(certificate)
        response["_links"] = _dump_links({
            "self": self.link_builder.build_link(
                f"/api/registrations/{certificate['registration_id']}/certificate", title="Self"
            ),
            "registration": self.link_builder.build_link(
                f"/api/registrations/{certificate['registration_id']}", title="Registration"
            )
        })
        return response

    def format_profile(self, profile: Profile) -> Dict[str, Any]:
        response = profile.model_dump(mode="json", exclude={"schema_version"})
        response["_links"] = _dump_links({
            "self": self.link_builder.build_link("/api/profile", title="Self"),
            "update": self.link_builder.build_link(
                "/api/profile", method="PUT", content_type="application/json", title="Update Profile"
            )
        })
        return response

    def format_stats(self, stats: RegistrationStats) -> Dict[str, Any]:
        response = stats.model_dump()
        response["_links"] = _dump_links({
            "self": self.link_builder.build_link("/api/admin/stats", title="Self"),
            "queue": self.link_builder.build_link("/api/admin/registrations", title="Review Queue")
        })
        return response

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        redirect_to: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{self.base_url}/problems/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(f"/docs/errors#{error_type}", title="Error documentation")
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link("/openapi/openapi.json", title="API schema")
        elif error_type == "authentication-required":
            links['login'] = self.link_builder.build_link(
                "/api/auth/login",
                method="POST",
                content_type="application/json",
                title="Login"
            )

        if redirect_to:
            links['redirect'] = self.link_builder.build_link(redirect_to, title="Sign in")

        error_response['_links'] = _dump_links(links)
        return error_response


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
