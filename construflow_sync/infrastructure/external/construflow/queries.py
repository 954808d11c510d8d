"""
Documentos GraphQL usados contra la API de Construflow.
"""

SIGN_IN = """
mutation SignIn($username: String!, $password: String!) {
  signIn(username: $username, password: $password) {
    accessToken
    refreshToken
  }
}
"""

REFRESH_TOKEN = """
mutation RefreshToken {
  refreshToken {
    accessToken
    refreshToken
  }
}
"""

# filter.standard = "all" trae tambien issues cerradas/archivadas
PROJECT_ISSUES = """
query GetProjectIssues($projectId: Int!, $first: Int, $after: String) {
  project(projectId: $projectId) {
    id
    name
    issues(first: $first, after: $after, filter: { standard: "all" }) {
      issues {
        id
        guid
        code
        title
        description
        status
        priority
        createdAt
        updatedAt
        deadline
        createdByUserId
        statusUpdatedByUserId
        statusUpdatedAt
        creationPhase
        resolutionPhase
        visibility
        editedAt
        disciplines {
          discipline {
            id
            name
          }
          status
        }
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

ISSUE_DETAILS = """
query GetIssueDetails($projectId: Int!, $issueId: Int!) {
  issue(projectId: $projectId, issueId: $issueId) {
    id
    code
    comments {
      id
      message
      visibility
      createdAt
      createdByUser {
        id
        name
        email
      }
    }
    history {
      _id
      user {
        id
        name
      }
      entityType
      fields
      dataTime
    }
  }
}
"""
