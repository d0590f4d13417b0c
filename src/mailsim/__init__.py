"""MailSim: generate and send simulated multi-party email conversations.

Subpackages:
    core: LLM factory, pricing and clock
    store: Accounts, conversations and persistence backends
    generation: LLM-backed message generation
    dispatch: SMTP delivery
    scheduling: Send scheduling and email threading

Modules:
    orchestrator: Generation and sending for stored conversations
    cli: Command-line front end
"""
