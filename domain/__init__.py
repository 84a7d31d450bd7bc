"""Ядро домена: актор, политика доступа, ошибки и слой хранилища."""
